"""
Catalog Routes
================
Public, read-only product listing.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import MAX_PAGE_SIZE
from common.schemas import CamelModel, Page, build_pagination
from modules.catalog.service import catalog_service

router = APIRouter(prefix="/products", tags=["products"])


class ProductRead(CamelModel):
    id: int
    name: str
    description: str
    category: str
    price: Decimal
    image_url: Optional[str] = None
    is_available: bool
    rating_average: Decimal
    rating_count: int


@router.get("", response_model=Page[ProductRead])
def list_products(
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    products, total = catalog_service.list_products(db, category=category, page=page, limit=limit)
    return {"items": products, "pagination": build_pagination(total, page, limit)}


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return catalog_service.get_product(db, product_id)
