from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from crud.base import BaseRepository, handles_database_errors
from schemas.common import Page, PaginationParams, utcnow
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err
from schemas.review import Review, ReviewFilter, review_adapter


class ReviewRepository(BaseRepository):
    entity = "review"
    collection_name = "reviews"

    @handles_database_errors("review")
    async def create(self, review: Review) -> Result[Review, AppError]:
        await self.collection.insert_one(review.model_dump())
        return ok(review)

    @handles_database_errors("review")
    async def get(self, review_id: str) -> Result[Review, AppError]:
        doc = await self._find_one({"data.id": review_id})
        if doc is None:
            return err(not_found("review", review_id))
        return ok(review_adapter.validate_python(doc))

    @handles_database_errors("review")
    async def find_by_reservation(self, reservation_id: str) -> Result[Optional[Review], AppError]:
        doc = await self._find_one({"data.reservation_id": reservation_id})
        return ok(review_adapter.validate_python(doc) if doc else None)

    @handles_database_errors("review")
    async def list(self, filters: ReviewFilter, pagination: PaginationParams) -> Result[Page[Review], AppError]:
        query: Dict[str, Any] = {}
        for field_name in ("salon_id", "customer_id", "staff_id"):
            value = getattr(filters, field_name)
            if value is not None:
                query[f"data.{field_name}"] = value
        if filters.min_rating is not None:
            query["data.rating"] = {"$gte": filters.min_rating}
        if filters.status:
            query["type"] = filters.status

        docs, total = await self._find_page(query, pagination, sort=[("data.created_at", DESCENDING)])
        items = [review_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("review")
    async def list_published_for_salon(self, salon_id: str) -> Result[List[Review], AppError]:
        docs = await self.collection.find(
            {"data.salon_id": salon_id, "type": "published"}
        ).to_list(length=None)
        return ok([review_adapter.validate_python(doc) for doc in docs])

    @handles_database_errors("review")
    async def increment_helpful(self, review_id: str) -> Result[Review, AppError]:
        update_result = await self.collection.update_one(
            {"data.id": review_id},
            {"$inc": {"data.helpful_count": 1}, "$set": {"data.updated_at": utcnow()}}
        )
        if not update_result.matched_count:
            return err(not_found("review", review_id))
        doc = await self._find_one({"data.id": review_id})
        return ok(review_adapter.validate_python(doc))

    @handles_database_errors("review")
    async def save(self, review: Review) -> Result[Review, AppError]:
        matched = await self._replace(review.data.id, review.model_dump())
        if not matched:
            return err(not_found("review", review.data.id))
        return ok(review)

    @handles_database_errors("review")
    async def delete(self, review_id: str) -> Result[None, AppError]:
        delete_result = await self.collection.delete_one({"data.id": review_id})
        if not delete_result.deleted_count:
            return err(not_found("review", review_id))
        return ok(None)
