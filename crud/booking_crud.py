from typing import Any, Dict

from pymongo import DESCENDING

from crud.base import BaseRepository, handles_database_errors
from schemas.booking import Booking, BookingFilter, booking_adapter
from schemas.common import Page, PaginationParams
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err


class BookingRepository(BaseRepository):
    entity = "booking"
    collection_name = "bookings"

    @handles_database_errors("booking")
    async def create(self, booking: Booking) -> Result[Booking, AppError]:
        await self.collection.insert_one(booking.model_dump())
        return ok(booking)

    @handles_database_errors("booking")
    async def get(self, booking_id: str) -> Result[Booking, AppError]:
        doc = await self._find_one({"data.id": booking_id})
        if doc is None:
            return err(not_found("booking", booking_id))
        return ok(booking_adapter.validate_python(doc))

    @handles_database_errors("booking")
    async def list(self, filters: BookingFilter, pagination: PaginationParams) -> Result[Page[Booking], AppError]:
        query: Dict[str, Any] = {}
        if filters.salon_id:
            query["data.salon_id"] = filters.salon_id
        if filters.customer_id:
            query["data.customer_id"] = filters.customer_id
        if filters.status:
            query["type"] = filters.status

        docs, total = await self._find_page(query, pagination, sort=[("data.starts_at", DESCENDING)])
        items = [booking_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("booking")
    async def save(self, booking: Booking) -> Result[Booking, AppError]:
        matched = await self._replace(booking.data.id, booking.model_dump())
        if not matched:
            return err(not_found("booking", booking.data.id))
        return ok(booking)

    @handles_database_errors("booking")
    async def delete(self, booking_id: str) -> Result[None, AppError]:
        result = await self.collection.delete_one({"data.id": booking_id})
        if not result.deleted_count:
            return err(not_found("booking", booking_id))
        return ok(None)
