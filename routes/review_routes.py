from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from routes.dependencies import get_current_user, get_optional_user, get_review_service, pagination_params, require_roles
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.review import HideReviewRequest, Review, ReviewCreate, ReviewFilter, ReviewStatus, ReviewUpdate
from schemas.user import CurrentUser
from services.review_service import ReviewService

router = APIRouter(
    prefix="/reviews",
    tags=["reviews"]
)


@router.get("/", response_model=Page[Review])
async def list_reviews(
    salon_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    staff_id: Optional[str] = None,
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    status: Optional[ReviewStatus] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    service: ReviewService = Depends(get_review_service)
):
    filters = ReviewFilter(
        salon_id=salon_id, customer_id=customer_id, staff_id=staff_id, min_rating=min_rating, status=status
    )
    return unwrap(await service.list_reviews(filters, pagination, user))


@router.post("/", response_model=Review, status_code=201)
async def create_review(
    request: ReviewCreate,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service)
):
    """Review a completed reservation. Each reservation can be reviewed once."""
    review = unwrap(await service.create_review(request, user))
    response.headers["Location"] = f"/api/v1/reviews/{review.data.id}"
    return review


@router.get("/{review_id}", response_model=Review)
async def get_review(
    review_id: str,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    service: ReviewService = Depends(get_review_service)
):
    return unwrap(await service.get_review(review_id, user))


@router.put("/{review_id}", response_model=Review)
async def update_review(
    review_id: str,
    request: ReviewUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service)
):
    return unwrap(await service.update_review(review_id, request, user))


@router.delete("/{review_id}", status_code=204)
async def delete_review(
    review_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service)
):
    unwrap(await service.delete_review(review_id, user))
    return Response(status_code=204)


@router.post("/{review_id}/hide", response_model=Review)
async def hide_review(
    review_id: str,
    request: HideReviewRequest,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReviewService = Depends(get_review_service)
):
    return unwrap(await service.hide_review(review_id, request, user))


@router.post("/{review_id}/publish", response_model=Review)
async def publish_review(
    review_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReviewService = Depends(get_review_service)
):
    return unwrap(await service.publish_review(review_id, user))


@router.post("/{review_id}/helpful", response_model=Review)
async def mark_helpful(
    review_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service)
):
    return unwrap(await service.mark_helpful(review_id))
