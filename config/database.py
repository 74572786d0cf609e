from motor.motor_asyncio import AsyncIOMotorClient
from typing import AsyncGenerator
import logging
import asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from config.settings import get_settings

logger = logging.getLogger('database')

REQUIRED_COLLECTIONS = [
    'users', 'customers', 'salons', 'services', 'staff',
    'reservations', 'bookings', 'reviews', 'notifications', 'password_resets'
]
# Keyed by something other than data.id
UNKEYED_COLLECTIONS = ('notifications', 'password_resets')


async def ensure_indexes(db) -> None:
    """Create the indexes the repositories rely on (idempotent)."""
    for collection in REQUIRED_COLLECTIONS:
        if collection in UNKEYED_COLLECTIONS:
            continue
        await db[collection].create_index([("data.id", ASCENDING)], unique=True)

    await db.users.create_index([("data.email", ASCENDING)], unique=True)
    await db.customers.create_index([("data.email", ASCENDING)], unique=True)
    await db.reviews.create_index([("data.reservation_id", ASCENDING)], unique=True)

    # Overlap lookups filter on staff and interval
    await db.reservations.create_index([
        ("data.staff_id", ASCENDING),
        ("data.start_time", ASCENDING),
        ("data.end_time", ASCENDING)
    ])
    await db.reservations.create_index([("data.customer_id", ASCENDING), ("data.start_time", DESCENDING)])
    await db.bookings.create_index([("data.customer_id", ASCENDING)])
    await db.reviews.create_index([("data.salon_id", ASCENDING), ("type", ASCENDING)])
    await db.notifications.create_index([("customer_id", ASCENDING), ("created_at", DESCENDING)])
    await db.password_resets.create_index([("token_hash", ASCENDING)], unique=True)


class Database:
    client = None
    db = None
    MAX_RETRIES = 3
    RETRY_DELAY = 1  # seconds

    @classmethod
    async def connect_db(cls):
        """Create database connection with retries."""
        if cls.db is not None:
            return

        settings = get_settings()
        retries = 0
        last_error = None

        while retries < cls.MAX_RETRIES:
            try:
                if not settings.mongodb_url:
                    raise ValueError("MONGODB_URL environment variable is not set")

                logger.info(f"Attempting to connect to MongoDB (Attempt {retries + 1}/{cls.MAX_RETRIES})")

                cls.client = AsyncIOMotorClient(
                    settings.mongodb_url,
                    serverSelectionTimeoutMS=5000,
                    connectTimeoutMS=10000,
                    socketTimeoutMS=10000,
                    maxPoolSize=50,
                    retryWrites=True,
                    retryReads=True
                )
                db = cls.client[settings.database_name]

                # Test the connection
                await db.command('ping')

                logger.info(f"Successfully connected to MongoDB database: {settings.database_name}")

                collections = await db.list_collection_names()
                for collection in REQUIRED_COLLECTIONS:
                    if collection not in collections:
                        await db.create_collection(collection)
                        logger.info(f"Created collection: {collection}")

                await ensure_indexes(db)
                cls.db = db
                return

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                last_error = e
                retries += 1
                if retries < cls.MAX_RETRIES:
                    logger.warning(f"Failed to connect to MongoDB (Attempt {retries}/{cls.MAX_RETRIES}). Retrying in {cls.RETRY_DELAY} seconds...")
                    await asyncio.sleep(cls.RETRY_DELAY)
                continue
            except Exception as e:
                logger.error(f"Unexpected error connecting to MongoDB: {str(e)}")
                raise

        logger.error(f"Failed to connect to MongoDB after {cls.MAX_RETRIES} attempts")
        raise last_error

    @classmethod
    async def close_db(cls):
        """Close database connection."""
        if cls.client is not None:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("MongoDB connection closed.")

    def __init__(self, db=None):
        """Wrap a motor database; defaults to the connected class-level one."""
        if db is None:
            db = type(self).db
        if db is None:
            raise RuntimeError("Database not initialized. Call connect_db() first.")

        self.handle = db
        self.users = db.users
        self.customers = db.customers
        self.salons = db.salons
        self.services = db.services
        self.staff = db.staff
        self.reservations = db.reservations
        self.bookings = db.bookings
        self.reviews = db.reviews
        self.notifications = db.notifications
        self.password_resets = db.password_resets

    async def ping(self) -> bool:
        await self.handle.command('ping')
        return True


async def get_db() -> AsyncGenerator[Database, None]:
    """FastAPI dependency for getting database instance."""
    if Database.db is None:
        await Database.connect_db()

    yield Database()
