"""
Review Module - Routes
========================
Submit reviews for a delivered order, list a product's reviews, manage
the caller's own reviews.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from common.schemas import CamelModel, Page, build_pagination
from modules.auth.deps import get_current_user
from modules.review.service import review_service

router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewEntry(CamelModel):
    product_id: int
    rating: int
    comment: str = ""
    images: List[str] = Field(default_factory=list)


class CreateReviewsPayload(CamelModel):
    order_id: int
    reviews: List[ReviewEntry]


class ReviewUpdate(CamelModel):
    rating: Optional[int] = None
    comment: Optional[str] = None
    images: Optional[List[str]] = None


class ReviewAuthor(CamelModel):
    id: int
    full_name: str


class ReviewRead(CamelModel):
    id: int
    product_id: int
    order_id: int
    rating: int
    comment: str
    images: List[str] = Field(default_factory=list)
    is_verified_purchase: bool
    user: Optional[ReviewAuthor] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@router.post("", response_model=List[ReviewRead], status_code=status.HTTP_201_CREATED)
def create_reviews(payload: CreateReviewsPayload, db: Session = Depends(get_db), me=Depends(get_current_user)):
    reviews = review_service.create_reviews(
        db, me.id, payload.order_id, [entry.model_dump() for entry in payload.reviews],
    )
    db.commit()
    for review in reviews:
        db.refresh(review)
    return reviews


@router.get("/product/{product_id}", response_model=Page[ReviewRead])
def product_reviews(
    product_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    reviews, total = review_service.list_product_reviews(db, product_id, page=page, limit=limit)
    return {"items": reviews, "pagination": build_pagination(total, page, limit)}


@router.get("/me", response_model=List[ReviewRead])
def my_reviews(db: Session = Depends(get_db), me=Depends(get_current_user)):
    return review_service.list_user_reviews(db, me.id)


@router.put("/{review_id}", response_model=ReviewRead)
def update_review(
    review_id: int,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    review = review_service.update_review(
        db, me.id, review_id,
        rating=payload.rating, comment=payload.comment, images=payload.images,
    )
    db.commit()
    db.refresh(review)
    return review


@router.delete("/{review_id}")
def delete_review(review_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    review_service.delete_review(db, me.id, review_id)
    db.commit()
    return {"message": "Review deleted successfully"}
