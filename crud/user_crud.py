from typing import Optional

from crud.base import BaseRepository, handles_database_errors
from schemas.errors import AppError, not_found
from schemas.result import Result, ok, err
from schemas.user import User, user_adapter


class UserRepository(BaseRepository):
    entity = "user"
    collection_name = "users"

    @handles_database_errors("user")
    async def create(self, user: User) -> Result[User, AppError]:
        await self.collection.insert_one(user.model_dump())
        return ok(user)

    @handles_database_errors("user")
    async def get(self, user_id: str) -> Result[User, AppError]:
        doc = await self._find_one({"data.id": user_id})
        if doc is None:
            return err(not_found("user", user_id))
        return ok(user_adapter.validate_python(doc))

    @handles_database_errors("user")
    async def find_by_email(self, email: str) -> Result[Optional[User], AppError]:
        doc = await self._find_one({"data.email": email.lower()})
        return ok(user_adapter.validate_python(doc) if doc else None)

    @handles_database_errors("user")
    async def save(self, user: User) -> Result[User, AppError]:
        matched = await self._replace(user.data.id, user.model_dump())
        if not matched:
            return err(not_found("user", user.data.id))
        return ok(user)
