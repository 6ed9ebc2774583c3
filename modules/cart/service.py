"""
Cart Module - Service Layer
==============================
Cart management: get/create, add/update/remove items, atomic consumption
by order creation. Every mutation recomputes the stored total.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import InvalidStateError, NotFoundError, ValidationError
from common.helpers import now_utc, money, line_total
from modules.cart.models import Cart, CartItem
from modules.catalog.service import catalog_service

logger = logging.getLogger("mimis.cart")


@dataclass(frozen=True)
class CartLine:
    """Immutable copy of a cart line, handed to the order aggregate."""
    product_id: int
    quantity: int
    price: Decimal


class CartService:

    def get_or_create_cart(self, db: Session, user_id: int) -> Cart:
        """Get existing cart or create new one for user."""
        cart = db.query(Cart).filter(Cart.user_id == user_id).first()
        if cart:
            return cart
        try:
            with db.begin_nested():
                cart = Cart(user_id=user_id, total=Decimal("0.00"), version=0)
                db.add(cart)
        except IntegrityError:
            # Another request created it first
            cart = db.query(Cart).filter(Cart.user_id == user_id).one()
        return cart

    def add_item(self, db: Session, user_id: int, product_id: int, quantity: int) -> Cart:
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = catalog_service.find_product(db, product_id)
        if not product:
            raise NotFoundError("Product not found")
        if not product.is_available:
            raise InvalidStateError("Product is not available")

        cart = self._locked_cart(db, self.get_or_create_cart(db, user_id).id)
        item = self._find_line(cart, product_id)
        if item:
            item.quantity += quantity
            item.price = money(product.price)
        else:
            cart.items.append(CartItem(
                product_id=product_id,
                quantity=quantity,
                price=money(product.price),
            ))

        self._recalculate(cart)
        db.flush()
        logger.info(f"Cart #{cart.id}: +{quantity} x product #{product_id}")
        return cart

    def update_item(self, db: Session, user_id: int, product_id: int, quantity: int) -> Cart:
        """Overwrite a line's quantity; quantity <= 0 removes the line."""
        cart = db.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart:
            raise NotFoundError("Cart not found")
        cart = self._locked_cart(db, cart.id)

        item = self._find_line(cart, product_id)
        if quantity <= 0:
            # Same policy as remove_item: dropping an absent line is a no-op
            if not item:
                return cart
            cart.items.remove(item)
        elif not item:
            raise NotFoundError("Item not found in cart")
        else:
            item.quantity = quantity

        self._recalculate(cart)
        db.flush()
        return cart

    def remove_item(self, db: Session, user_id: int, product_id: int) -> Cart:
        """Remove a line if present. Removing an absent line is a no-op."""
        cart = self._locked_cart(db, self.get_or_create_cart(db, user_id).id)
        item = self._find_line(cart, product_id)
        if item:
            cart.items.remove(item)
            self._recalculate(cart)
            db.flush()
        return cart

    def clear_cart(self, db: Session, user_id: int):
        """Remove all items from user's cart. Only order creation (via consume) empties a cart."""
        cart = db.query(Cart).filter(Cart.user_id == user_id).first()
        if cart:
            db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
            cart.total = Decimal("0.00")
            cart.version = (cart.version or 0) + 1
            cart.updated_at = now_utc()
            db.flush()
            db.expire(cart, ["items"])

    def consume(self, db: Session, user_id: int) -> Tuple[List[CartLine], Decimal]:
        """
        Snapshot and empty the cart in one step.

        The cart row is locked, then claimed with a version compare-and-swap,
        so two concurrent checkouts cannot both take the same lines: the loser
        sees either an empty cart or a failed swap. Raises InvalidStateError
        ("Cart is empty") in both cases.
        """
        cart = (
            db.query(Cart)
            .filter(Cart.user_id == user_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not cart:
            raise InvalidStateError("Cart is empty")

        items = db.query(CartItem).filter(CartItem.cart_id == cart.id).order_by(CartItem.id).all()
        if not items:
            raise InvalidStateError("Cart is empty")

        lines = [CartLine(it.product_id, it.quantity, money(it.price)) for it in items]
        total = money(sum(line_total(l.price, l.quantity) for l in lines))

        claimed = (
            db.query(Cart)
            .filter(Cart.id == cart.id, Cart.version == cart.version)
            .update({Cart.version: Cart.version + 1}, synchronize_session=False)
        )
        if claimed != 1:
            logger.warning(f"Cart #{cart.id} was consumed concurrently")
            raise InvalidStateError("Cart is empty")

        db.expire(cart)
        self.clear_cart(db, user_id)
        return lines, total

    def item_count(self, cart: Cart) -> int:
        return sum(it.quantity for it in cart.items)

    # ==========================================
    # Private helpers
    # ==========================================

    def _locked_cart(self, db: Session, cart_id: int) -> Cart:
        return db.query(Cart).filter(Cart.id == cart_id).with_for_update().one()

    def _find_line(self, cart: Cart, product_id: int):
        return next((it for it in cart.items if it.product_id == product_id), None)

    def _recalculate(self, cart: Cart):
        cart.total = money(sum((line_total(it.price, it.quantity) for it in cart.items), Decimal("0")))
        cart.version = (cart.version or 0) + 1
        cart.updated_at = now_utc()


# Singleton
cart_service = CartService()
