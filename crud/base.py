from functools import wraps
from typing import Any, Dict, List, Optional, Tuple
import logging
import re

from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from schemas.common import PaginationParams
from schemas.errors import connection_error, constraint_violation, database_error
from schemas.result import err

logger = logging.getLogger(__name__)


def handles_database_errors(entity: str):
    """Turn driver exceptions raised by a repository coroutine into Err values."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except DuplicateKeyError as e:
                logger.warning(f"Duplicate key on {entity} in {func.__name__}: {str(e)}")
                return err(constraint_violation(f"{entity.capitalize()} already exists", entity))
            except ConnectionFailure as e:
                logger.error(f"Database connection failure in {func.__name__}: {str(e)}")
                return err(connection_error("Database is unavailable"))
            except PyMongoError as e:
                logger.error(f"Database error in {func.__name__}: {str(e)}", exc_info=True)
                return err(database_error(f"Failed to access {entity} data"))
        return wrapper
    return decorator


def text_search(value: str) -> Dict[str, Any]:
    """Case-insensitive substring match, with regex metacharacters escaped."""
    return {"$regex": re.escape(value), "$options": "i"}


class BaseRepository:
    entity = "record"
    collection_name = ""

    def __init__(self, db):
        self.db = db
        self.collection = getattr(db, self.collection_name)

    async def _find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(query)

    async def _find_page(
        self,
        query: Dict[str, Any],
        pagination: PaginationParams,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        total = await self.collection.count_documents(query)
        cursor = self.collection.find(query).sort(sort or [("data.created_at", ASCENDING)])
        docs = await cursor.skip(pagination.offset).limit(pagination.limit).to_list(length=pagination.limit)
        return docs, total

    async def _replace(self, entity_id: str, document: Dict[str, Any]) -> int:
        result = await self.collection.replace_one({"data.id": entity_id}, document)
        return result.matched_count
