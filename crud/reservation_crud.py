from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from pymongo import ASCENDING

from crud.base import BaseRepository, handles_database_errors
from schemas.common import Page, PaginationParams, utcnow
from schemas.errors import AppError, reservation_not_found
from schemas.reservation import ACTIVE_STATUSES, Reservation, ReservationFilter, reservation_adapter
from schemas.result import Result, ok, err

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository):
    entity = "reservation"
    collection_name = "reservations"

    @handles_database_errors("reservation")
    async def create(self, reservation: Reservation) -> Result[Reservation, AppError]:
        await self.collection.insert_one(reservation.model_dump())
        logger.info(f"Reservation {reservation.data.id} created for staff {reservation.data.staff_id}")
        return ok(reservation)

    @handles_database_errors("reservation")
    async def get(self, reservation_id: str) -> Result[Reservation, AppError]:
        doc = await self._find_one({"data.id": reservation_id})
        if doc is None:
            return err(reservation_not_found(reservation_id))
        return ok(reservation_adapter.validate_python(doc))

    @handles_database_errors("reservation")
    async def get_many(self, reservation_ids: List[str]) -> Result[List[Reservation], AppError]:
        docs = await self.collection.find({"data.id": {"$in": reservation_ids}}).to_list(length=None)
        return ok([reservation_adapter.validate_python(doc) for doc in docs])

    @handles_database_errors("reservation")
    async def list(self, filters: ReservationFilter, pagination: PaginationParams) -> Result[Page[Reservation], AppError]:
        query: Dict[str, Any] = {}
        for field_name in ("salon_id", "customer_id", "staff_id", "service_id", "is_paid"):
            value = getattr(filters, field_name)
            if value is not None:
                query[f"data.{field_name}"] = value
        if filters.status:
            query["type"] = filters.status
        if filters.date_from or filters.date_to:
            start_range: Dict[str, Any] = {}
            if filters.date_from:
                start_range["$gte"] = filters.date_from
            if filters.date_to:
                start_range["$lt"] = filters.date_to
            query["data.start_time"] = start_range

        docs, total = await self._find_page(query, pagination, sort=[("data.start_time", ASCENDING)])
        items = [reservation_adapter.validate_python(doc) for doc in docs]
        return ok(Page(items=items, total=total, limit=pagination.limit, offset=pagination.offset))

    @handles_database_errors("reservation")
    async def has_conflict(
        self,
        staff_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_id: Optional[str] = None
    ) -> Result[bool, AppError]:
        """True if a non-cancelled reservation of ``staff_id`` overlaps [start_time, end_time)."""
        query: Dict[str, Any] = {
            "data.staff_id": staff_id,
            "type": {"$ne": "cancelled"},
            "data.start_time": {"$lt": end_time},
            "data.end_time": {"$gt": start_time},
        }
        if exclude_id:
            query["data.id"] = {"$ne": exclude_id}

        existing = await self.collection.find_one(query, {"data.id": 1})
        return ok(existing is not None)

    @handles_database_errors("reservation")
    async def list_for_staff_between(
        self,
        staff_ids: List[str],
        start_time: datetime,
        end_time: datetime
    ) -> Result[List[Reservation], AppError]:
        docs = await self.collection.find({
            "data.staff_id": {"$in": staff_ids},
            "type": {"$ne": "cancelled"},
            "data.start_time": {"$lt": end_time},
            "data.end_time": {"$gt": start_time},
        }).sort("data.start_time", ASCENDING).to_list(length=None)
        return ok([reservation_adapter.validate_python(doc) for doc in docs])

    @handles_database_errors("reservation")
    async def has_upcoming(self, field_name: str, value: str) -> Result[bool, AppError]:
        """True if an active reservation in the future references ``data.<field_name> == value``."""
        existing = await self.collection.find_one({
            f"data.{field_name}": value,
            "type": {"$in": list(ACTIVE_STATUSES)},
            "data.start_time": {"$gt": utcnow()},
        })
        return ok(existing is not None)

    @handles_database_errors("reservation")
    async def count_by_status(self, salon_id: str, start_time: datetime, end_time: datetime) -> Result[Dict[str, int], AppError]:
        docs = await self.collection.find(
            {
                "data.salon_id": salon_id,
                "data.start_time": {"$gte": start_time, "$lt": end_time},
            },
            {"type": 1}
        ).to_list(length=None)
        counts: Dict[str, int] = {}
        for doc in docs:
            counts[doc["type"]] = counts.get(doc["type"], 0) + 1
        return ok(counts)

    @handles_database_errors("reservation")
    async def save(self, reservation: Reservation) -> Result[Reservation, AppError]:
        matched = await self._replace(reservation.data.id, reservation.model_dump())
        if not matched:
            return err(reservation_not_found(reservation.data.id))
        return ok(reservation)

    @handles_database_errors("reservation")
    async def link_to_booking(self, reservation_ids: List[str], booking_id: str) -> Result[int, AppError]:
        """Attach active, unbooked reservations to a booking in one update; returns how many matched."""
        result = await self.collection.update_many(
            {"data.id": {"$in": reservation_ids}, "data.booking_id": None, "type": {"$in": list(ACTIVE_STATUSES)}},
            {"$set": {"data.booking_id": booking_id, "data.updated_at": utcnow()}}
        )
        return ok(result.modified_count)

    @handles_database_errors("reservation")
    async def unlink_booking(self, booking_id: str) -> Result[int, AppError]:
        result = await self.collection.update_many(
            {"data.booking_id": booking_id},
            {"$set": {"data.booking_id": None, "data.updated_at": utcnow()}}
        )
        return ok(result.modified_count)
