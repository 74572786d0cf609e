from typing import Any, Dict

from pymongo import ASCENDING

from crud.base import BaseRepository, handles_database_errors, text_search
from schemas.common import Page, PaginationParams, utcnow
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err
from schemas.salon import Salon, SalonFilter, salon_adapter


class SalonRepository(BaseRepository):
    entity = "salon"
    collection_name = "salons"

    @handles_database_errors("salon")
    async def create(self, salon: Salon) -> Result[Salon, AppError]:
        await self.collection.insert_one(salon.model_dump())
        return ok(salon)

    @handles_database_errors("salon")
    async def get(self, salon_id: str) -> Result[Salon, AppError]:
        doc = await self._find_one({"data.id": salon_id})
        if doc is None:
            return err(not_found("salon", salon_id))
        return ok(salon_adapter.validate_python(doc))

    @handles_database_errors("salon")
    async def list(self, filters: SalonFilter, pagination: PaginationParams) -> Result[Page[Salon], AppError]:
        query: Dict[str, Any] = {"type": filters.status or "active"}
        if filters.city:
            query["data.address.city"] = text_search(filters.city)
        if filters.search:
            query["$or"] = [
                {"data.name": text_search(filters.search)},
                {"data.description": text_search(filters.search)},
            ]

        docs, total = await self._find_page(query, pagination, sort=[("data.name", ASCENDING)])
        items = [salon_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("salon")
    async def save(self, salon: Salon) -> Result[Salon, AppError]:
        matched = await self._replace(salon.data.id, salon.model_dump())
        if not matched:
            return err(not_found("salon", salon.data.id))
        return ok(salon)

    @handles_database_errors("salon")
    async def update_rating(self, salon_id: str, average_rating: float, total_ratings: int) -> Result[None, AppError]:
        update_result = await self.collection.update_one(
            {"data.id": salon_id},
            {
                "$set": {
                    "data.average_rating": round(average_rating, 1),
                    "data.total_ratings": total_ratings,
                    "data.updated_at": utcnow()
                }
            }
        )
        if not update_result.matched_count:
            return err(not_found("salon", salon_id))
        return ok(None)
