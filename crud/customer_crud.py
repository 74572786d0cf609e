from typing import Any, Dict, Optional

from pymongo import ASCENDING

from crud.base import BaseRepository, handles_database_errors, text_search
from schemas.common import Page, PaginationParams
from schemas.customer import Customer, CustomerFilter, customer_adapter
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err


class CustomerRepository(BaseRepository):
    entity = "customer"
    collection_name = "customers"

    @handles_database_errors("customer")
    async def create(self, customer: Customer) -> Result[Customer, AppError]:
        await self.collection.insert_one(customer.model_dump())
        return ok(customer)

    @handles_database_errors("customer")
    async def get(self, customer_id: str) -> Result[Customer, AppError]:
        doc = await self._find_one({"data.id": customer_id})
        if doc is None:
            return err(not_found("customer", customer_id))
        return ok(customer_adapter.validate_python(doc))

    @handles_database_errors("customer")
    async def find_by_email(self, email: str) -> Result[Optional[Customer], AppError]:
        doc = await self._find_one({"data.email": email.lower()})
        return ok(customer_adapter.validate_python(doc) if doc else None)

    @handles_database_errors("customer")
    async def list(self, filters: CustomerFilter, pagination: PaginationParams) -> Result[Page[Customer], AppError]:
        query: Dict[str, Any] = {}
        if filters.status:
            query["type"] = filters.status
        else:
            query["type"] = {"$ne": "deleted"}
        if filters.membership_level:
            query["data.membership_level"] = filters.membership_level
        if filters.search:
            query["$or"] = [
                {"data.name": text_search(filters.search)},
                {"data.email": text_search(filters.search)},
            ]

        docs, total = await self._find_page(query, pagination, sort=[("data.name", ASCENDING)])
        items = [customer_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("customer")
    async def save(self, customer: Customer) -> Result[Customer, AppError]:
        matched = await self._replace(customer.data.id, customer.model_dump())
        if not matched:
            return err(not_found("customer", customer.data.id))
        return ok(customer)
