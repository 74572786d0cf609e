from typing import TypeVar
import logging

from fastapi import HTTPException

from schemas.errors import AppError
from schemas.result import Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


def unwrap(result: Result[T, AppError]) -> T:
    """Return the Ok value or raise the HTTP error matching the Err kind."""
    if result.is_ok:
        return result.value

    error = result.error
    if error.status_code >= 500:
        logger.error(f"{error.code}: {error.message}")
    else:
        logger.info(f"{error.code}: {error.message}")
    raise HTTPException(status_code=error.status_code, detail=error.to_detail())
