"""
Review Service - Business Logic
==================================
Create, edit, delete and list product reviews. A product's rating
average/count is recomputed from all of its reviews after every write.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func as sa_func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import ConflictError, NotFoundError, ValidationError
from common.helpers import now_utc, money
from modules.catalog.models import Product
from modules.catalog.service import catalog_service
from modules.order.models import Order, OrderStatus
from modules.review.models import Review, MAX_COMMENT_LENGTH

logger = logging.getLogger("mimis.review")


class ReviewService:

    # ------------------------------------------
    # Create (batch, from a delivered order)
    # ------------------------------------------

    def create_reviews(self, db: Session, user_id: int, order_id: int, entries: List[Dict[str, Any]]) -> List[Review]:
        """
        Validate every entry first, then write them all. Nothing is written
        if any entry is rejected.
        """
        order = db.query(Order).filter(
            Order.id == order_id,
            Order.user_id == user_id,
            Order.status == OrderStatus.DELIVERED.value,
        ).first()
        if not order:
            raise NotFoundError("Order not found or not delivered")
        if not entries:
            raise ValidationError("At least one review is required")

        ordered_products = {item.product_id for item in order.items}
        cleaned = []
        seen = set()
        for entry in entries:
            product_id = entry.get("product_id")
            if product_id not in ordered_products:
                raise ValidationError("Product does not belong to this order")
            if product_id in seen:
                raise ValidationError("Duplicate product in review request")
            seen.add(product_id)
            cleaned.append(self._clean_entry(entry))

        existing = db.query(Review.product_id).filter(
            Review.order_id == order.id,
            Review.user_id == user_id,
            Review.product_id.in_(seen),
        ).first()
        if existing:
            raise ConflictError("You have already reviewed this product for this order")

        now = now_utc()
        reviews = [
            Review(
                product_id=data["product_id"],
                order_id=order.id,
                user_id=user_id,
                rating=data["rating"],
                comment=data["comment"],
                images=data["images"],
                is_verified_purchase=True,
                created_at=now,
                updated_at=now,
            )
            for data in cleaned
        ]
        try:
            with db.begin_nested():
                db.add_all(reviews)
        except IntegrityError:
            raise ConflictError("You have already reviewed this product for this order")

        for product_id in seen:
            self.recompute_product_rating(db, product_id)
        db.flush()
        logger.info(f"User #{user_id} reviewed {len(reviews)} product(s) from order #{order.id}")
        return reviews

    # ------------------------------------------
    # Edit / delete (owner only)
    # ------------------------------------------

    def update_review(
        self, db: Session, user_id: int, review_id: int,
        rating: Optional[int] = None, comment: Optional[str] = None, images: Optional[list] = None,
    ) -> Review:
        review = self._get_own_review(db, user_id, review_id)
        if rating is not None:
            review.rating = self._check_rating(rating)
        if comment is not None:
            review.comment = self._check_comment(comment)
        if images is not None:
            review.images = self._check_images(images)
        review.updated_at = now_utc()
        db.flush()
        self.recompute_product_rating(db, review.product_id)
        db.flush()
        return review

    def delete_review(self, db: Session, user_id: int, review_id: int):
        review = self._get_own_review(db, user_id, review_id)
        product_id = review.product_id
        db.delete(review)
        db.flush()
        self.recompute_product_rating(db, product_id)
        db.flush()

    # ------------------------------------------
    # Queries
    # ------------------------------------------

    def list_product_reviews(
        self, db: Session, product_id: int, page: int = 1, limit: int = 10,
    ) -> Tuple[List[Review], int]:
        catalog_service.get_product(db, product_id)
        q = db.query(Review).filter(Review.product_id == product_id)
        total = q.count()
        reviews = (
            q.order_by(desc(Review.created_at), desc(Review.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return reviews, total

    def list_user_reviews(self, db: Session, user_id: int) -> List[Review]:
        return db.query(Review).filter(
            Review.user_id == user_id,
        ).order_by(desc(Review.created_at), desc(Review.id)).all()

    def recompute_product_rating(self, db: Session, product_id: int):
        """Full rescan of the product's reviews."""
        average, count = db.query(
            sa_func.avg(Review.rating), sa_func.count(Review.id),
        ).filter(Review.product_id == product_id).one()
        product = db.query(Product).filter(Product.id == product_id).first()
        if product:
            product.rating_average = money(average or 0)
            product.rating_count = count or 0

    # ------------------------------------------
    # Validation helpers
    # ------------------------------------------

    def _clean_entry(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "product_id": entry["product_id"],
            "rating": self._check_rating(entry.get("rating")),
            "comment": self._check_comment(entry.get("comment")),
            "images": self._check_images(entry.get("images") or []),
        }

    def _check_rating(self, rating) -> int:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        return rating

    def _check_comment(self, comment) -> str:
        text = (comment or "").strip()
        if not text:
            raise ValidationError("Comment is required")
        if len(text) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment cannot be more than {MAX_COMMENT_LENGTH} characters")
        return text

    def _check_images(self, images) -> list:
        if not isinstance(images, list) or not all(isinstance(i, str) and i.strip() for i in images):
            raise ValidationError("Images must be a list of URLs")
        return [i.strip() for i in images]

    def _get_own_review(self, db: Session, user_id: int, review_id: int) -> Review:
        review = db.query(Review).filter(Review.id == review_id, Review.user_id == user_id).first()
        if not review:
            raise NotFoundError("Review not found")
        return review


review_service = ReviewService()
