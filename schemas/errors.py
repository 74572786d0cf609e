from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import re


class ErrorType(str, Enum):
    # Infrastructure
    NOT_FOUND = "notFound"
    DATABASE_ERROR = "databaseError"
    CONNECTION_ERROR = "connectionError"
    CONSTRAINT_VIOLATION = "constraintViolation"
    VALIDATION_ERROR = "validationError"

    # Auth
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INVALID_CREDENTIALS = "invalidCredentials"
    ACCOUNT_LOCKED = "accountLocked"
    WEAK_PASSWORD = "weakPassword"
    DUPLICATE_EMAIL = "duplicateEmail"

    # Catalog
    SALON_UNAVAILABLE = "salonUnavailable"
    SERVICE_UNAVAILABLE = "serviceUnavailable"
    STAFF_UNAVAILABLE = "staffUnavailable"

    # Reservations and bookings
    RESERVATION_NOT_FOUND = "reservationNotFound"
    INVALID_TIME_RANGE = "invalidTimeRange"
    PAST_TIME_NOT_ALLOWED = "pastTimeNotAllowed"
    INVALID_AMOUNT = "invalidAmount"
    SLOT_NOT_AVAILABLE = "slotNotAvailable"
    RESERVATION_NOT_MODIFIABLE = "reservationNotModifiable"
    RESERVATION_ALREADY_CONFIRMED = "reservationAlreadyConfirmed"
    RESERVATION_ALREADY_CANCELLED = "reservationAlreadyCancelled"
    RESERVATION_NOT_CONFIRMED = "reservationNotConfirmed"
    RESERVATION_NOT_YET_PASSED = "reservationNotYetPassed"
    RESERVATION_NOT_COMPLETED = "reservationNotCompleted"
    INVALID_RESERVATION_STATUS = "invalidReservationStatus"
    INVALID_STATUS_TRANSITION = "invalidStatusTransition"

    # Reviews
    INVALID_RATING = "invalidRating"
    DUPLICATE_REVIEW = "duplicateReview"
    REVIEW_ALREADY_HIDDEN = "reviewAlreadyHidden"
    REVIEW_NOT_HIDDEN = "reviewNotHidden"
    REVIEW_UPDATE_EXPIRED = "reviewUpdateExpired"


ERROR_STATUS_CODES: Dict[ErrorType, int] = {
    ErrorType.VALIDATION_ERROR: 400,
    ErrorType.INVALID_TIME_RANGE: 400,
    ErrorType.PAST_TIME_NOT_ALLOWED: 400,
    ErrorType.INVALID_AMOUNT: 400,
    ErrorType.INVALID_RATING: 400,
    ErrorType.WEAK_PASSWORD: 400,
    ErrorType.UNAUTHORIZED: 401,
    ErrorType.INVALID_CREDENTIALS: 401,
    ErrorType.FORBIDDEN: 403,
    ErrorType.REVIEW_UPDATE_EXPIRED: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.RESERVATION_NOT_FOUND: 404,
    ErrorType.ACCOUNT_LOCKED: 423,
    ErrorType.CONNECTION_ERROR: 503,
    ErrorType.DATABASE_ERROR: 500,
}
# Everything else is a conflict with the current state of a resource
CONFLICT_STATUS = 409


def _upper_snake(value: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', value).upper()


@dataclass
class AppError:
    type: ErrorType
    message: str
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def code(self) -> str:
        """Machine readable code, e.g. ``SLOT_NOT_AVAILABLE``."""
        return _upper_snake(self.type.value)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES.get(self.type, CONFLICT_STATUS)

    def to_detail(self) -> Dict[str, Any]:
        detail = {"code": self.code, "message": self.message}
        if self.details:
            detail["details"] = self.details
        return detail


def not_found(entity: str, entity_id: str) -> AppError:
    return AppError(ErrorType.NOT_FOUND, f"{entity.capitalize()} not found", entity, entity_id)


def reservation_not_found(reservation_id: str) -> AppError:
    return AppError(ErrorType.RESERVATION_NOT_FOUND, "Reservation not found", "reservation", reservation_id)


def validation_error(message: str, field_name: Optional[str] = None) -> AppError:
    details = {"field": field_name} if field_name else {}
    return AppError(ErrorType.VALIDATION_ERROR, message, details=details)


def database_error(message: str) -> AppError:
    return AppError(ErrorType.DATABASE_ERROR, message)


def connection_error(message: str) -> AppError:
    return AppError(ErrorType.CONNECTION_ERROR, message)


def constraint_violation(message: str, entity: Optional[str] = None) -> AppError:
    return AppError(ErrorType.CONSTRAINT_VIOLATION, message, entity)


def forbidden(message: str = "You do not have access to this resource") -> AppError:
    return AppError(ErrorType.FORBIDDEN, message)


def unauthorized(message: str = "Authentication required") -> AppError:
    return AppError(ErrorType.UNAUTHORIZED, message)


def invalid_transition(entity: str, current: str, target: str) -> AppError:
    return AppError(
        ErrorType.INVALID_STATUS_TRANSITION,
        f"Cannot change {entity} status from {current} to {target}",
        entity,
        details={"from": current, "to": target}
    )
