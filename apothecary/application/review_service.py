from typing import Literal, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apothecary.domain.models import Order, OrderItem, Product, Review, ReviewVote
from shared.core import get_logger
from .errors import Conflict, NotFound
from .schemas import ReviewCreate, ReviewStats, ReviewUpdate

logger = get_logger(__name__)

ReviewSort = Literal["recent", "helpful", "rating"]

SORT_COLUMNS = {
    "recent": Review.created_at,
    "helpful": Review.helpful_count,
    "rating": Review.rating,
}

class ReviewService:
    def __init__(self, db: Session):
        self.db = db

    def has_purchased(self, user_id: str, product_id: int) -> bool:
        """True when any of the user's orders contains the product."""
        hit = (
            self.db.query(OrderItem.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.user_id == user_id, OrderItem.product_id == product_id)
            .first()
        )
        return hit is not None

    def create(self, product_id: int, user_id: str, data: ReviewCreate) -> Review:
        if self.db.get(Product, product_id) is None:
            raise NotFound("Product not found")
        review = Review(
            product_id=product_id,
            user_id=user_id,
            rating=data.rating,
            title=data.title,
            comment=data.comment,
            verified_purchase=self.has_purchased(user_id, product_id),
        )
        self.db.add(review)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("You have already reviewed this product")
        self.db.refresh(review)
        logger.info(
            "Review created",
            extra={"extra_fields": {
                "review_id": review.id,
                "product_id": product_id,
                "verified_purchase": review.verified_purchase,
            }},
        )
        return review

    def list_for_product(self, product_id: int, sort_by: ReviewSort = "recent", limit: int = 20, offset: int = 0):
        """Approved reviews only."""
        return (
            self.db.query(Review)
            .filter(Review.product_id == product_id, Review.is_approved.is_(True))
            .order_by(SORT_COLUMNS[sort_by].desc(), Review.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def stats(self, product_id: int) -> ReviewStats:
        average, count = (
            self.db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.product_id == product_id, Review.is_approved.is_(True))
            .one()
        )
        if not count:
            return ReviewStats(average_rating=0, total_count=0)
        return ReviewStats(average_rating=round(float(average), 1), total_count=count)

    def get_user_review(self, user_id: str, product_id: int) -> Optional[Review]:
        return (
            self.db.query(Review)
            .filter(Review.user_id == user_id, Review.product_id == product_id)
            .first()
        )

    def _own_review(self, review_id: int, user_id: str) -> Review:
        # Someone else's review reads as missing
        review = self.db.get(Review, review_id)
        if review is None or review.user_id != user_id:
            raise NotFound("Review not found")
        return review

    def update(self, review_id: int, user_id: str, data: ReviewUpdate) -> Review:
        review = self._own_review(review_id, user_id)
        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(review, field, value)
        self.db.commit()
        self.db.refresh(review)
        return review

    def delete(self, review_id: int, user_id: str) -> None:
        review = self._own_review(review_id, user_id)
        self.db.delete(review)
        self.db.commit()

    def vote(self, review_id: int, user_id: str, is_helpful: bool) -> ReviewVote:
        """Record a helpfulness vote; a second vote by the same user replaces the first."""
        review = self.db.get(Review, review_id)
        if review is None:
            raise NotFound("Review not found")
        vote = (
            self.db.query(ReviewVote)
            .filter(ReviewVote.review_id == review_id, ReviewVote.user_id == user_id)
            .first()
        )
        if vote is None:
            vote = ReviewVote(review_id=review_id, user_id=user_id, is_helpful=is_helpful)
            self.db.add(vote)
        else:
            vote.is_helpful = is_helpful
        self.db.flush()
        review.helpful_count = (
            self.db.query(func.count(ReviewVote.id))
            .filter(ReviewVote.review_id == review_id, ReviewVote.is_helpful.is_(True))
            .scalar()
        )
        self.db.commit()
        self.db.refresh(vote)
        return vote
