from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import datetime, timedelta

from schemas.common import SafeText, UtcDatetime, utcnow
from schemas.errors import AppError, ErrorType
from schemas.result import Result, err, ok

ReviewStatus = Literal["published", "hidden"]

MIN_RATING = 1
MAX_RATING = 5
MAX_TITLE_LENGTH = 255
MAX_COMMENT_LENGTH = 5000
MAX_IMAGES = 5
EDIT_WINDOW_DAYS = 30


class ReviewData(BaseModel):
    id: str
    salon_id: str
    customer_id: str
    reservation_id: str
    staff_id: Optional[str] = None
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    service_rating: Optional[int] = None
    staff_rating: Optional[int] = None
    atmosphere_rating: Optional[int] = None
    images: List[str] = []
    is_verified: bool = False
    helpful_count: int = 0
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class PublishedReview(BaseModel):
    type: Literal["published"] = "published"
    data: ReviewData
    published_at: UtcDatetime


class HiddenReview(BaseModel):
    type: Literal["hidden"] = "hidden"
    data: ReviewData
    hidden_at: UtcDatetime
    hidden_by: str
    reason: Optional[str] = None


Review = Annotated[Union[PublishedReview, HiddenReview], Field(discriminator="type")]
review_adapter = TypeAdapter(Review)


def validate_rating(value: Optional[int], field_name: str = "rating") -> Result[Optional[int], AppError]:
    if value is None and field_name != "rating":
        return ok(None)
    if not isinstance(value, int) or isinstance(value, bool) or not MIN_RATING <= value <= MAX_RATING:
        return err(AppError(
            ErrorType.INVALID_RATING,
            f"{field_name} must be an integer between {MIN_RATING} and {MAX_RATING}",
            details={"field": field_name}
        ))
    return ok(value)


def validate_review_content(title: Optional[str], comment: Optional[str]) -> Result[None, AppError]:
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        return err(AppError(ErrorType.VALIDATION_ERROR, f"Title cannot exceed {MAX_TITLE_LENGTH} characters",
                            details={"field": "title"}))
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        return err(AppError(ErrorType.VALIDATION_ERROR, f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters",
                            details={"field": "comment"}))
    return ok(None)


def is_editable(review: Review, now: datetime) -> bool:
    return now - review.data.created_at <= timedelta(days=EDIT_WINDOW_DAYS)


# Range checks on ratings are done by validate_rating so they surface as invalidRating
class ReviewCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reservation_id: str
    rating: int
    title: Optional[SafeText] = None
    comment: Optional[SafeText] = None
    service_rating: Optional[int] = None
    staff_rating: Optional[int] = None
    atmosphere_rating: Optional[int] = None
    images: List[str] = Field(default=[], max_length=MAX_IMAGES)


class ReviewUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: Optional[int] = None
    title: Optional[SafeText] = None
    comment: Optional[SafeText] = None
    service_rating: Optional[int] = None
    staff_rating: Optional[int] = None
    atmosphere_rating: Optional[int] = None
    images: Optional[List[str]] = Field(default=None, max_length=MAX_IMAGES)


class HideReviewRequest(BaseModel):
    reason: Optional[SafeText] = Field(default=None, max_length=500)


class ReviewFilter(BaseModel):
    salon_id: Optional[str] = None
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    min_rating: Optional[int] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    status: Optional[ReviewStatus] = None


class RatingSummary(BaseModel):
    salon_id: str
    average_rating: float
    total_reviews: int
    distribution: Dict[int, int]
    average_service_rating: Optional[float] = None
    average_staff_rating: Optional[float] = None
    average_atmosphere_rating: Optional[float] = None
