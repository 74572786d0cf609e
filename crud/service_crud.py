from typing import Any, Dict

from pymongo import ASCENDING

from crud.base import BaseRepository, handles_database_errors
from schemas.common import Page, PaginationParams
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err
from schemas.service import Service, ServiceFilter, service_adapter


class ServiceRepository(BaseRepository):
    entity = "service"
    collection_name = "services"

    @handles_database_errors("service")
    async def create(self, service: Service) -> Result[Service, AppError]:
        await self.collection.insert_one(service.model_dump())
        return ok(service)

    @handles_database_errors("service")
    async def get(self, service_id: str) -> Result[Service, AppError]:
        doc = await self._find_one({"data.id": service_id})
        if doc is None:
            return err(not_found("service", service_id))
        return ok(service_adapter.validate_python(doc))

    @handles_database_errors("service")
    async def list(self, filters: ServiceFilter, pagination: PaginationParams) -> Result[Page[Service], AppError]:
        query: Dict[str, Any] = {}
        if filters.salon_id:
            query["data.salon_id"] = filters.salon_id
        if filters.category:
            query["data.category"] = filters.category
        if filters.active_only:
            query["type"] = "active"
        else:
            query["type"] = {"$ne": "discontinued"}

        docs, total = await self._find_page(
            query, pagination, sort=[("data.category", ASCENDING), ("data.name", ASCENDING)]
        )
        items = [service_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("service")
    async def save(self, service: Service) -> Result[Service, AppError]:
        matched = await self._replace(service.data.id, service.model_dump())
        if not matched:
            return err(not_found("service", service.data.id))
        return ok(service)
