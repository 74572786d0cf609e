"""
Seed a development database with an admin account and one bookable salon.

    python -m scripts.seed_data

Safe to run repeatedly: the admin user is looked up by email and the demo
salon by name, and each is only created when missing.
"""
import asyncio
import logging
import os

from pydantic import SecretStr

from config.database import Database
from config.logging_config import configure_logging
from crud.salon_crud import SalonRepository
from schemas.common import PaginationParams
from schemas.salon import Address, OpeningHours, SalonCreate, SalonFilter
from schemas.service import ServiceCreate
from schemas.staff import AvailabilitySlot, StaffCreate
from schemas.user import CurrentUser, UserCreateRequest
from services.auth_service import AuthService
from services.salon_service import SalonService
from services.service_catalog_service import ServiceCatalogService
from services.staff_service import StaffService

logger = logging.getLogger(__name__)

ADMIN_EMAIL = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
ADMIN_PASSWORD = os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123')
SALON_NAME = "Beautiful Salon & Spa"

# Seeding runs outside of any request, so it acts as a built-in admin
SYSTEM_ACTOR = CurrentUser(user_id="system", email="system@localhost", role="admin")

DEMO_SERVICES = [
    ServiceCreate(salon_id="", name="Haircut", category="cut", duration_minutes=60, price=5000),
    ServiceCreate(salon_id="", name="Color", category="color", duration_minutes=90, price=8000),
    ServiceCreate(salon_id="", name="Head Spa", category="head_spa", duration_minutes=30, price=3000),
]


def _demo_salon() -> SalonCreate:
    weekdays = [OpeningHours(day_of_week=day, open_time="10:00", close_time="20:00") for day in range(6)]
    return SalonCreate(
        name=SALON_NAME,
        description="Demo salon created by the seed script",
        address=Address(street="123 Main Street", city="Tokyo", country="JP"),
        phone="+81312345678",
        email="salon@example.com",
        opening_hours=weekdays + [OpeningHours(day_of_week=6, is_closed=True)],
    )


async def seed_admin(db: Database) -> None:
    auth = AuthService(db)
    existing = await auth.users.find_by_email(ADMIN_EMAIL)
    if existing.is_ok and existing.value is not None:
        logger.info(f"Admin user already exists: {ADMIN_EMAIL}")
        return

    created = await auth.create_user(
        UserCreateRequest(email=ADMIN_EMAIL, password=SecretStr(ADMIN_PASSWORD), name="Administrator", role="admin"),
        SYSTEM_ACTOR
    )
    if not created.is_ok:
        raise RuntimeError(f"Could not create admin user: {created.error.message}")
    logger.info(f"Admin user created: {ADMIN_EMAIL}")


async def seed_salon(db: Database) -> None:
    found = await SalonRepository(db).list(SalonFilter(search=SALON_NAME), PaginationParams(limit=1))
    if found.is_ok and found.value.total:
        logger.info(f"Demo salon already exists: {found.value.items[0].data.id}")
        return

    salon = await SalonService(db).create_salon(_demo_salon(), SYSTEM_ACTOR)
    if not salon.is_ok:
        raise RuntimeError(f"Could not create salon: {salon.error.message}")
    salon_id = salon.value.data.id
    logger.info(f"Demo salon created: {salon_id}")

    catalog = ServiceCatalogService(db)
    service_ids = []
    for template in DEMO_SERVICES:
        service = await catalog.create_service(template.model_copy(update={"salon_id": salon_id}), SYSTEM_ACTOR)
        if not service.is_ok:
            raise RuntimeError(f"Could not create service {template.name}: {service.error.message}")
        service_ids.append(service.value.data.id)
        logger.info(f"Service created: {template.name} ({service.value.data.id})")

    staff = await StaffService(db).create_staff(StaffCreate(
        salon_id=salon_id,
        name="Hanako Sato",
        specialties=["Cut", "Color"],
        service_ids=service_ids,
        years_of_experience=8,
        availability=[
            AvailabilitySlot(day_of_week=day, start_time="10:00", end_time="19:00",
                             break_start="13:00", break_end="14:00")
            for day in range(5)
        ],
    ), SYSTEM_ACTOR)
    if not staff.is_ok:
        raise RuntimeError(f"Could not create staff: {staff.error.message}")
    logger.info(f"Staff created: {staff.value.data.name} ({staff.value.data.id})")


async def main():
    configure_logging()
    await Database.connect_db()
    try:
        db = Database()
        await seed_admin(db)
        await seed_salon(db)
    finally:
        await Database.close_db()


if __name__ == "__main__":
    asyncio.run(main())
