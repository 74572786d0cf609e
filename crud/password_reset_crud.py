from datetime import datetime
from typing import Any, Dict, Optional

from crud.base import BaseRepository, handles_database_errors
from schemas.errors import AppError
from schemas.result import Result, ok


class PasswordResetRepository(BaseRepository):
    """One-time reset tokens, stored by their SHA-256 digest only."""
    entity = "password reset"
    collection_name = "password_resets"

    @handles_database_errors("password reset")
    async def create(self, token_hash: str, user_id: str, created_at: datetime,
                     expires_at: datetime) -> Result[None, AppError]:
        await self.collection.insert_one({
            "token_hash": token_hash,
            "user_id": user_id,
            "created_at": created_at,
            "expires_at": expires_at,
            "used_at": None,
        })
        return ok(None)

    @handles_database_errors("password reset")
    async def consume(self, token_hash: str, now: datetime) -> Result[Optional[Dict[str, Any]], AppError]:
        """Mark an unused, unexpired token as used and return it, or None when there is no such token."""
        doc = await self.collection.find_one_and_update(
            {"token_hash": token_hash, "used_at": None, "expires_at": {"$gt": now}},
            {"$set": {"used_at": now}}
        )
        return ok(doc)
