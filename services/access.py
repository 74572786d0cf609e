from typing import Optional

from schemas.errors import AppError, forbidden
from schemas.result import Result, ok, err
from schemas.user import CurrentUser


def ensure_staff(actor: CurrentUser) -> Result[None, AppError]:
    if not actor.is_staff:
        return err(forbidden("Staff or admin role required"))
    return ok(None)


def ensure_admin(actor: CurrentUser) -> Result[None, AppError]:
    if not actor.is_admin:
        return err(forbidden("Admin role required"))
    return ok(None)


def ensure_salon_access(actor: CurrentUser, salon_id: str) -> Result[None, AppError]:
    """Admins manage every salon, staff only the salon they belong to."""
    if actor.is_admin:
        return ok(None)
    if actor.role == "staff" and actor.salon_id is not None and actor.salon_id == salon_id:
        return ok(None)
    return err(forbidden("You cannot manage this salon"))


def ensure_customer_access(actor: CurrentUser, customer_id: str, salon_id: Optional[str] = None) -> Result[None, AppError]:
    """Customers only reach their own records; staff reach customers of their salon."""
    if actor.role == "customer":
        if actor.customer_id != customer_id:
            return err(forbidden("You can only access your own data"))
        return ok(None)
    if salon_id is not None:
        return ensure_salon_access(actor, salon_id)
    return ok(None)
