from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user
from apothecary.application.review_service import ReviewService
from apothecary.application.schemas import (
    ReviewCreate, ReviewRead, ReviewStats, ReviewUpdate, ReviewVoteCreate, ReviewVoteRead,
)
from apothecary.infrastructure.db import get_db

router = APIRouter(tags=["reviews"])

@router.get("/products/{product_id}/reviews", response_model=list[ReviewRead])
def list_reviews(
    product_id: int,
    sort_by: Literal["recent", "helpful", "rating"] = "recent",
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return ReviewService(db).list_for_product(product_id, sort_by=sort_by, limit=limit, offset=offset)

@router.get("/products/{product_id}/reviews/stats", response_model=ReviewStats)
def review_stats(product_id: int, db: Session = Depends(get_db)):
    return ReviewService(db).stats(product_id)

@router.get("/products/{product_id}/reviews/mine", response_model=Optional[ReviewRead])
def my_review(product_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return ReviewService(db).get_user_review(user.id, product_id)

@router.post("/products/{product_id}/reviews", response_model=ReviewRead, status_code=201)
def create_review(
    product_id: int,
    payload: ReviewCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """One review per product per user; purchase is verified from order history."""
    return ReviewService(db).create(product_id, user.id, payload)

@router.patch("/reviews/{review_id}", response_model=ReviewRead)
def update_review(
    review_id: int,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return ReviewService(db).update(review_id, user.id, payload)

@router.delete("/reviews/{review_id}", status_code=204)
def delete_review(review_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ReviewService(db).delete(review_id, user.id)

@router.post("/reviews/{review_id}/vote", response_model=ReviewVoteRead, status_code=201)
def vote_review(
    review_id: int,
    payload: ReviewVoteCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return ReviewService(db).vote(review_id, user.id, payload.is_helpful)
