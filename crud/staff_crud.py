from typing import Any, Dict, List, Optional

from pymongo import ASCENDING

from crud.base import BaseRepository, handles_database_errors
from schemas.common import Page, PaginationParams
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err
from schemas.staff import Staff, StaffFilter, staff_adapter


class StaffRepository(BaseRepository):
    entity = "staff"
    collection_name = "staff"

    @handles_database_errors("staff")
    async def create(self, staff: Staff) -> Result[Staff, AppError]:
        await self.collection.insert_one(staff.model_dump())
        return ok(staff)

    @handles_database_errors("staff")
    async def get(self, staff_id: str) -> Result[Staff, AppError]:
        doc = await self._find_one({"data.id": staff_id})
        if doc is None:
            return err(not_found("staff", staff_id))
        return ok(staff_adapter.validate_python(doc))

    @handles_database_errors("staff")
    async def list(self, filters: StaffFilter, pagination: PaginationParams) -> Result[Page[Staff], AppError]:
        query = self._build_query(filters)
        docs, total = await self._find_page(query, pagination, sort=[("data.name", ASCENDING)])
        items = [staff_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("staff")
    async def list_active(self, salon_id: str, service_id: Optional[str] = None) -> Result[List[Staff], AppError]:
        query = self._build_query(StaffFilter(salon_id=salon_id, service_id=service_id, status="active"))
        docs = await self.collection.find(query).sort("data.name", ASCENDING).to_list(length=None)
        return ok([staff_adapter.validate_python(doc) for doc in docs])

    @handles_database_errors("staff")
    async def save(self, staff: Staff) -> Result[Staff, AppError]:
        matched = await self._replace(staff.data.id, staff.model_dump())
        if not matched:
            return err(not_found("staff", staff.data.id))
        return ok(staff)

    def _build_query(self, filters: StaffFilter) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if filters.salon_id:
            query["data.salon_id"] = filters.salon_id
        if filters.status:
            query["type"] = filters.status
        else:
            query["type"] = {"$ne": "terminated"}
        if filters.service_id:
            # An empty service list means every service of the salon
            query["$or"] = [
                {"data.service_ids": filters.service_id},
                {"data.service_ids": {"$size": 0}},
            ]
        return query
