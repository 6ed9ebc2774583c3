"""
Catalog Module - Service Layer
================================
Read-only product lookups used by the cart, order and review modules.
"""

from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError
from modules.catalog.models import Product


class CatalogService:

    def find_product(self, db: Session, product_id: int) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    def get_product(self, db: Session, product_id: int) -> Product:
        product = self.find_product(db, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def get_products_map(self, db: Session, product_ids) -> dict:
        ids = list(set(product_ids))
        if not ids:
            return {}
        return {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}

    def list_products(
        self, db: Session, category: str = None, available_only: bool = True,
        page: int = 1, limit: int = 20,
    ) -> Tuple[List[Product], int]:
        q = db.query(Product)
        if category:
            q = q.filter(Product.category == category)
        if available_only:
            q = q.filter(Product.is_available == True)  # noqa: E712
        total = q.count()
        products = q.order_by(Product.name).offset((page - 1) * limit).limit(limit).all()
        return products, total


catalog_service = CatalogService()
