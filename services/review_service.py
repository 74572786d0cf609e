from datetime import datetime
from typing import List, Optional
import logging

from config.database import Database
from crud.reservation_crud import ReservationRepository
from crud.review_crud import ReviewRepository
from crud.salon_crud import SalonRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.errors import AppError, ErrorType, forbidden
from schemas.reservation import CompletedReservation
from schemas.result import Result, ok, err
from schemas.review import (
    HiddenReview, HideReviewRequest, PublishedReview, RatingSummary, Review, ReviewCreate, ReviewData,
    ReviewFilter, ReviewUpdate, is_editable, validate_rating, validate_review_content
)
from schemas.user import CurrentUser
from services.access import ensure_salon_access

logger = logging.getLogger(__name__)

SUB_RATINGS = ("service_rating", "staff_rating", "atmosphere_rating")


def _average(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def _check_ratings(rating: Optional[int], sub_ratings: dict, rating_required: bool) -> Result[None, AppError]:
    if rating is not None or rating_required:
        checked = validate_rating(rating)
        if not checked.is_ok:
            return checked
    for field_name in SUB_RATINGS:
        checked = validate_rating(sub_ratings.get(field_name), field_name)
        if not checked.is_ok:
            return checked
    return ok(None)


class ReviewService:
    def __init__(self, db: Database):
        self.db = db
        self.reviews = ReviewRepository(db)
        self.reservations = ReservationRepository(db)
        self.salons = SalonRepository(db)

    async def create_review(self, request: ReviewCreate, actor: CurrentUser) -> Result[Review, AppError]:
        if actor.role != "customer" or not actor.customer_id:
            return err(forbidden("Only customers can write reviews"))

        ratings = _check_ratings(request.rating, request.model_dump(include=set(SUB_RATINGS)), rating_required=True)
        if not ratings.is_ok:
            return ratings
        content = validate_review_content(request.title, request.comment)
        if not content.is_ok:
            return content

        found = await self.reservations.get(request.reservation_id)
        if not found.is_ok:
            return found
        reservation = found.value
        if reservation.data.customer_id != actor.customer_id:
            return err(forbidden("You can only review your own reservations"))
        if not isinstance(reservation, CompletedReservation):
            return err(AppError(ErrorType.RESERVATION_NOT_COMPLETED, "Only completed reservations can be reviewed",
                                "reservation", reservation.data.id))

        existing = await self.reviews.find_by_reservation(reservation.data.id)
        if not existing.is_ok:
            return existing
        if existing.value is not None:
            return err(AppError(ErrorType.DUPLICATE_REVIEW, "This reservation has already been reviewed",
                                "review", existing.value.data.id))

        now = utcnow()
        review = PublishedReview(
            data=ReviewData(
                id=generate_id("rev"),
                salon_id=reservation.data.salon_id,
                customer_id=actor.customer_id,
                reservation_id=reservation.data.id,
                staff_id=reservation.data.staff_id,
                is_verified=True,
                created_at=now,
                updated_at=now,
                **request.model_dump(exclude={"reservation_id"})
            ),
            published_at=now,
        )
        created = await self.reviews.create(review)
        if not created.is_ok:
            if created.error.type == ErrorType.CONSTRAINT_VIOLATION:
                return err(AppError(ErrorType.DUPLICATE_REVIEW, "This reservation has already been reviewed", "review"))
            return created

        await self.refresh_salon_rating(review.data.salon_id)
        logger.info(f"Review {review.data.id} created for salon {review.data.salon_id}")
        return created

    async def get_review(self, review_id: str, actor: Optional[CurrentUser] = None) -> Result[Review, AppError]:
        found = await self.reviews.get(review_id)
        if not found.is_ok:
            return found
        if isinstance(found.value, HiddenReview) and not self._can_see_hidden(found.value, actor):
            return err(AppError(ErrorType.NOT_FOUND, "Review not found", "review", review_id))
        return found

    def _can_see_hidden(self, review: Review, actor: Optional[CurrentUser]) -> bool:
        if actor is None:
            return False
        if actor.role == "customer":
            return actor.customer_id == review.data.customer_id
        return ensure_salon_access(actor, review.data.salon_id).is_ok

    async def list_reviews(self, filters: ReviewFilter, pagination: PaginationParams,
                           actor: Optional[CurrentUser] = None) -> Result[Page[Review], AppError]:
        # Hidden reviews are only listed for the salon's staff
        if filters.salon_id is None or actor is None or not ensure_salon_access(actor, filters.salon_id).is_ok:
            filters = filters.model_copy(update={"status": "published"})
        return await self.reviews.list(filters, pagination)

    async def update_review(self, review_id: str, request: ReviewUpdate, actor: CurrentUser,
                            now: Optional[datetime] = None) -> Result[Review, AppError]:
        found = await self.reviews.get(review_id)
        if not found.is_ok:
            return found
        review = found.value
        if actor.customer_id != review.data.customer_id:
            return err(forbidden("Only the author can edit a review"))
        now = now or utcnow()
        if not is_editable(review, now):
            return err(AppError(ErrorType.REVIEW_UPDATE_EXPIRED, "Reviews can only be edited within 30 days",
                                "review", review_id))

        changes = request.model_dump(exclude_unset=True)
        ratings = _check_ratings(changes.get("rating"), changes, rating_required="rating" in changes)
        if not ratings.is_ok:
            return ratings
        content = validate_review_content(changes.get("title"), changes.get("comment"))
        if not content.is_ok:
            return content

        review.data = review.data.model_copy(update={**changes, "updated_at": now})
        saved = await self.reviews.save(review)
        if saved.is_ok and "rating" in changes:
            await self.refresh_salon_rating(review.data.salon_id)
        return saved

    async def hide_review(self, review_id: str, request: HideReviewRequest, actor: CurrentUser) -> Result[Review, AppError]:
        found = await self._get_managed(review_id, actor)
        if not found.is_ok:
            return found
        review = found.value
        if isinstance(review, HiddenReview):
            return err(AppError(ErrorType.REVIEW_ALREADY_HIDDEN, "Review is already hidden", "review", review_id))

        now = utcnow()
        review.data.updated_at = now
        saved = await self.reviews.save(HiddenReview(data=review.data, hidden_at=now, hidden_by=actor.user_id,
                                                     reason=request.reason))
        if saved.is_ok:
            await self.refresh_salon_rating(review.data.salon_id)
        return saved

    async def publish_review(self, review_id: str, actor: CurrentUser) -> Result[Review, AppError]:
        found = await self._get_managed(review_id, actor)
        if not found.is_ok:
            return found
        review = found.value
        if isinstance(review, PublishedReview):
            return err(AppError(ErrorType.REVIEW_NOT_HIDDEN, "Review is already published", "review", review_id))

        now = utcnow()
        review.data.updated_at = now
        saved = await self.reviews.save(PublishedReview(data=review.data, published_at=now))
        if saved.is_ok:
            await self.refresh_salon_rating(review.data.salon_id)
        return saved

    async def mark_helpful(self, review_id: str) -> Result[Review, AppError]:
        found = await self.get_review(review_id)
        if not found.is_ok:
            return found
        return await self.reviews.increment_helpful(review_id)

    async def delete_review(self, review_id: str, actor: CurrentUser) -> Result[None, AppError]:
        found = await self.reviews.get(review_id)
        if not found.is_ok:
            return found
        review = found.value
        if not actor.is_admin and actor.customer_id != review.data.customer_id:
            return err(forbidden("Only the author or an admin can delete a review"))

        deleted = await self.reviews.delete(review_id)
        if deleted.is_ok:
            await self.refresh_salon_rating(review.data.salon_id)
            logger.info(f"Review {review_id} deleted by {actor.user_id}")
        return deleted

    async def get_rating_summary(self, salon_id: str) -> Result[RatingSummary, AppError]:
        salon = await self.salons.get(salon_id)
        if not salon.is_ok:
            return salon
        published = await self.reviews.list_published_for_salon(salon_id)
        if not published.is_ok:
            return published

        reviews = published.value
        distribution = {stars: 0 for stars in range(1, 6)}
        for review in reviews:
            distribution[review.data.rating] += 1

        def collect(field_name: str) -> List[int]:
            return [getattr(r.data, field_name) for r in reviews if getattr(r.data, field_name) is not None]

        return ok(RatingSummary(
            salon_id=salon_id,
            average_rating=_average([r.data.rating for r in reviews]) or 0.0,
            total_reviews=len(reviews),
            distribution=distribution,
            average_service_rating=_average(collect("service_rating")),
            average_staff_rating=_average(collect("staff_rating")),
            average_atmosphere_rating=_average(collect("atmosphere_rating")),
        ))

    async def refresh_salon_rating(self, salon_id: str) -> Result[None, AppError]:
        """Recalculate the salon's average rating from its published reviews."""
        published = await self.reviews.list_published_for_salon(salon_id)
        if not published.is_ok:
            logger.error(f"Could not recalculate rating for salon {salon_id}: {published.error.message}")
            return published
        ratings = [review.data.rating for review in published.value]
        average = sum(ratings) / len(ratings) if ratings else 0.0
        return await self.salons.update_rating(salon_id, average, len(ratings))

    async def _get_managed(self, review_id: str, actor: CurrentUser) -> Result[Review, AppError]:
        found = await self.reviews.get(review_id)
        if not found.is_ok:
            return found
        allowed = ensure_salon_access(actor, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found
