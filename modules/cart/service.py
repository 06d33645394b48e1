"""
Cart Module - Service Layer
==============================
Cart management keyed by the anonymous session id: add/update/remove items,
totals, and clearing after a successful order.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func

from common.exceptions import ValidationError, NotFoundError
from modules.cart.models import CartItem
from modules.catalog.models import Product
from modules.pricing.calculator import CartTotals, compute_totals, lines_from_cart_items
from modules.pricing.service import CartConfigProvider

logger = logging.getLogger("mimasa.cart")

MAX_LINE_QUANTITY = 99


class CartService:

    def get_items(self, db: Session, session_id: str) -> List[CartItem]:
        """All cart lines for a session, product eager-loaded."""
        return (
            db.query(CartItem)
            .options(joinedload(CartItem.product))
            .filter(CartItem.session_id == session_id)
            .order_by(CartItem.id)
            .all()
        )

    def add_item(self, db: Session, session_id: str, product_id: int, quantity: int = 1) -> CartItem:
        """
        Add a product to the cart.

        An existing line is incremented with a single conditional UPDATE so two
        racing requests cannot lose an increment; a lost insert race (unique
        violation) falls back to the same increment. The increment only matches
        while the line stays within MAX_LINE_QUANTITY.
        """
        if quantity < 1:
            raise ValidationError(fields={"quantity": "Quantity must be at least 1."})
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(fields={"quantity": f"Quantity cannot exceed {MAX_LINE_QUANTITY}."})

        product = db.query(Product).filter(Product.id == product_id).first()
        if not product or not product.is_active:
            raise NotFoundError("Product not found.")

        if not self._increment(db, session_id, product_id, quantity):
            try:
                with db.begin_nested():
                    db.add(CartItem(session_id=session_id, product_id=product_id, quantity=quantity))
            except IntegrityError:
                # Line exists: either a concurrent add won the insert or it is full
                if not self._increment(db, session_id, product_id, quantity):
                    raise ValidationError(fields={"quantity": f"Quantity cannot exceed {MAX_LINE_QUANTITY}."})
                logger.info(f"Concurrent add for product #{product_id}; incremented existing line")

        db.flush()
        item = self._get_line(db, session_id, product_id)
        db.refresh(item)
        return item

    def update_quantity(self, db: Session, session_id: str, item_id: int, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity. Quantity below 1 removes the line (returns None)."""
        item = self._get_owned(db, session_id, item_id)
        if quantity < 1:
            db.delete(item)
            db.flush()
            return None
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(fields={"quantity": f"Quantity cannot exceed {MAX_LINE_QUANTITY}."})
        item.quantity = quantity
        db.flush()
        return item

    def remove_item(self, db: Session, session_id: str, item_id: int):
        item = self._get_owned(db, session_id, item_id)
        db.delete(item)
        db.flush()

    def clear_session(self, db: Session, session_id: str) -> int:
        """Remove all items from a session's cart. Returns number of lines removed."""
        removed = db.query(CartItem).filter(CartItem.session_id == session_id).delete(synchronize_session=False)
        db.flush()
        return removed

    def get_count(self, db: Session, session_id: str) -> int:
        return db.query(
            func.coalesce(func.sum(CartItem.quantity), 0)
        ).filter(CartItem.session_id == session_id).scalar() or 0

    def get_totals(self, db: Session, session_id: str, config_provider: CartConfigProvider) -> CartTotals:
        """Totals for the session cart with the provider's current config."""
        items = self.get_items(db, session_id)
        return compute_totals(lines_from_cart_items(items), config_provider.get(db))

    # ==========================================
    # Private helpers
    # ==========================================

    def _increment(self, db: Session, session_id: str, product_id: int, quantity: int) -> int:
        return db.query(CartItem).filter(
            CartItem.session_id == session_id,
            CartItem.product_id == product_id,
            CartItem.quantity + quantity <= MAX_LINE_QUANTITY,
        ).update(
            {CartItem.quantity: CartItem.quantity + quantity},
            synchronize_session=False,
        )

    def _get_line(self, db: Session, session_id: str, product_id: int) -> CartItem:
        return db.query(CartItem).filter(
            CartItem.session_id == session_id,
            CartItem.product_id == product_id,
        ).one()

    def _get_owned(self, db: Session, session_id: str, item_id: int) -> CartItem:
        item = db.query(CartItem).filter(
            CartItem.id == item_id,
            CartItem.session_id == session_id,
        ).first()
        if not item:
            raise NotFoundError("Cart item not found.")
        return item


# Singleton
cart_service = CartService()
