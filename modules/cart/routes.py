"""
Cart Routes
=============
View cart, add/update/remove items. All endpoints act on the caller's cart.
"""

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import line_total
from common.schemas import CamelModel
from modules.auth.deps import get_current_user
from modules.cart.service import cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


class CartItemPayload(CamelModel):
    product_id: int
    quantity: int = 1


class CartItemRead(CamelModel):
    product_id: int
    product_name: str
    quantity: int
    price: Decimal
    line_total: Decimal


class CartRead(CamelModel):
    id: int
    items: List[CartItemRead]
    total: Decimal
    item_count: int


def _serialize(cart) -> dict:
    return {
        "id": cart.id,
        "items": [
            {
                "product_id": it.product_id,
                "product_name": it.product.name if it.product else "",
                "quantity": it.quantity,
                "price": it.price,
                "line_total": line_total(it.price, it.quantity),
            }
            for it in cart.items
        ],
        "total": cart.total,
        "item_count": cart_service.item_count(cart),
    }


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("", response_model=CartRead)
def view_cart(db: Session = Depends(get_db), me=Depends(get_current_user)):
    cart = cart_service.get_or_create_cart(db, me.id)
    db.commit()
    return _serialize(cart)


# ==========================================
# ➕➖ Mutations
# ==========================================

@router.post("", response_model=CartRead)
@router.post("/add", response_model=CartRead)
def add_to_cart(payload: CartItemPayload, db: Session = Depends(get_db), me=Depends(get_current_user)):
    cart = cart_service.add_item(db, me.id, payload.product_id, payload.quantity)
    db.commit()
    db.refresh(cart)
    return _serialize(cart)


@router.put("/update", response_model=CartRead)
def update_cart_item(payload: CartItemPayload, db: Session = Depends(get_db), me=Depends(get_current_user)):
    cart = cart_service.update_item(db, me.id, payload.product_id, payload.quantity)
    db.commit()
    db.refresh(cart)
    return _serialize(cart)


@router.delete("/remove/{product_id}", response_model=CartRead)
def remove_from_cart(product_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    cart = cart_service.remove_item(db, me.id, product_id)
    db.commit()
    db.refresh(cart)
    return _serialize(cart)
