"""
Order Module - Service Layer
===============================
OrderCommitter: turns a verified payment into an Order + OrderItems.
  - idempotent on merchant_reference / gateway_payment_id
  - order and items written as one unit (savepoint), retried on failure
  - session cart cleared only after the order write succeeded
  - confirmation email dispatched after the commit, failures swallowed

OrderService: back-office queries and fulfillment updates.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from common.exceptions import PersistenceError, NotFoundError, ValidationError
from common.helpers import now_utc, money, generate_order_number
from config.settings import ORDER_NUMBER_PREFIX, ORDER_COMMIT_MAX_ATTEMPTS
from modules.cart.service import cart_service
from modules.order.models import Order, OrderItem, OrderStatus, FulfillmentStatus
from modules.notification.service import order_notifier

logger = logging.getLogger("mimasa.order")


@dataclass(frozen=True)
class PaymentRecord:
    gateway_order_id: str
    gateway_payment_id: str
    gateway_signature: str
    payment_status: str


@dataclass(frozen=True)
class CommitResult:
    order_number: str
    created: bool


class OrderCommitter:

    def __init__(self, notifier=None, max_attempts: int = ORDER_COMMIT_MAX_ATTEMPTS, prefix: str = ORDER_NUMBER_PREFIX):
        self.notifier = notifier
        self.max_attempts = max(1, max_attempts)
        self.prefix = prefix

    def find_existing(self, db: Session, merchant_reference: str, gateway_payment_id: Optional[str]) -> Optional[Order]:
        conditions = [Order.merchant_reference == merchant_reference]
        if gateway_payment_id:
            conditions.append(Order.gateway_payment_id == gateway_payment_id)
        return db.query(Order).filter(or_(*conditions)).first()

    def commit(
        self,
        db: Session,
        session_id: str,
        customer: dict,
        items: List[dict],
        totals,
        payment: PaymentRecord,
        merchant_reference: str,
        clear_cart: bool = True,
    ) -> CommitResult:
        """
        Persist a paid order. Commits the session on success.

        items: [{product_id, name, unit_price, quantity}] priced snapshot
        totals: object with subtotal / shipping_charge / total
        Raises PersistenceError once all attempts failed.
        """
        existing = self.find_existing(db, merchant_reference, payment.gateway_payment_id)
        if existing:
            logger.info(f"Order {existing.order_number} already recorded for {merchant_reference}")
            return CommitResult(existing.order_number, created=False)

        self.check_invariants(items, totals)

        last_error = None
        order = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                order = self._write_order(db, customer, items, totals, payment, merchant_reference)
                if clear_cart:
                    cart_service.clear_session(db, session_id)
                db.commit()
                break
            except IntegrityError as e:
                db.rollback()
                existing = self.find_existing(db, merchant_reference, payment.gateway_payment_id)
                if existing:
                    logger.info(f"Order {existing.order_number} was recorded concurrently for {merchant_reference}")
                    return CommitResult(existing.order_number, created=False)
                last_error = e
                logger.warning(f"Order write conflict for {merchant_reference} (attempt {attempt}): {e.orig}")
            except SQLAlchemyError as e:
                db.rollback()
                last_error = e
                logger.warning(f"Order write failed for {merchant_reference} (attempt {attempt}): {e}")
        else:
            logger.error(
                f"Order NOT recorded for verified payment {payment.gateway_payment_id} "
                f"ref={merchant_reference} after {self.max_attempts} attempts: {last_error}"
            )
            raise PersistenceError()

        logger.info(f"Order {order.order_number} recorded: {order.total_amount} ref={merchant_reference}")
        self._notify(order)
        return CommitResult(order.order_number, created=True)

    def check_invariants(self, items: List[dict], totals):
        """subtotal == Σ line totals and total == subtotal + shipping."""
        if not items:
            raise PersistenceError("Cannot record an order without items.")
        line_sum = money(sum((money(Decimal(str(i["unit_price"])) * int(i["quantity"])) for i in items), Decimal("0")))
        subtotal = money(totals.subtotal)
        shipping = money(totals.shipping_charge)
        total = money(totals.total)
        if line_sum != subtotal or total != subtotal + shipping or shipping < 0:
            logger.error(f"Order totals mismatch: lines={line_sum} subtotal={subtotal} shipping={shipping} total={total}")
            raise PersistenceError("Order totals do not add up.")

    # ==========================================
    # Private helpers
    # ==========================================

    def _write_order(self, db: Session, customer: dict, items: List[dict], totals, payment: PaymentRecord, merchant_reference: str) -> Order:
        with db.begin_nested():
            order = Order(
                order_number=self._new_order_number(db),
                customer_name=customer["name"],
                customer_email=customer["email"],
                customer_phone=customer["phone"],
                shipping_address=customer["address"],
                pin_code=customer["pin_code"],
                subtotal=money(totals.subtotal),
                shipping_charge=money(totals.shipping_charge),
                total_amount=money(totals.total),
                status=OrderStatus.PAID.value,
                payment_status=payment.payment_status,
                fulfillment_status=FulfillmentStatus.NEW.value,
                merchant_reference=merchant_reference,
                gateway_order_id=payment.gateway_order_id,
                gateway_payment_id=payment.gateway_payment_id,
                gateway_signature=payment.gateway_signature,
                paid_at=now_utc(),
            )
            db.add(order)
            db.flush()
            self._add_items(db, order, items)
            db.flush()
        return order

    def _add_items(self, db: Session, order: Order, items: List[dict]):
        for i in items:
            price = money(Decimal(str(i["unit_price"])))
            quantity = int(i["quantity"])
            db.add(OrderItem(
                order_id=order.id,
                product_id=i.get("product_id"),
                product_name=i["name"],
                product_price=price,
                quantity=quantity,
                subtotal=money(price * quantity),
            ))

    def _new_order_number(self, db: Session) -> str:
        for _ in range(5):
            number = generate_order_number(self.prefix)
            if not db.query(Order.id).filter(Order.order_number == number).first():
                return number
        # Unique constraint catches the rare leftover collision
        return generate_order_number(self.prefix, length=8)

    def _notify(self, order: Order):
        if self.notifier is None:
            return
        try:
            self.notifier.send_order_confirmation(order)
        except Exception:
            logger.exception(f"Notification for order {order.order_number} failed")


# ==========================================
# Back office
# ==========================================

FULFILLMENT_FLOW = {
    FulfillmentStatus.NEW.value: {FulfillmentStatus.CONFIRMED.value, FulfillmentStatus.CANCELLED.value},
    FulfillmentStatus.CONFIRMED.value: {FulfillmentStatus.SHIPPED.value, FulfillmentStatus.CANCELLED.value},
    FulfillmentStatus.SHIPPED.value: {FulfillmentStatus.DELIVERED.value, FulfillmentStatus.CANCELLED.value},
    FulfillmentStatus.DELIVERED.value: set(),
    FulfillmentStatus.CANCELLED.value: set(),
}


class OrderService:

    def list_orders(
        self,
        db: Session,
        status: Optional[str] = None,
        fulfillment: Optional[str] = None,
        page: int = 1,
        per_page: int = 25,
    ) -> Tuple[List[Order], int]:
        q = db.query(Order)
        if status:
            q = q.filter(Order.status == status)
        if fulfillment:
            q = q.filter(Order.fulfillment_status == fulfillment)
        total = q.count()
        page = max(page, 1)
        orders = q.order_by(desc(Order.created_at), desc(Order.id)).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    def get_by_number(self, db: Session, order_number: str) -> Order:
        order = (
            db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.order_number == order_number)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found.")
        return order

    def update_fulfillment(self, db: Session, order_number: str, new_status: str) -> Order:
        order = self.get_by_number(db, order_number)
        allowed = FULFILLMENT_FLOW.get(order.fulfillment_status, set())
        if new_status not in allowed:
            raise ValidationError(fields={
                "fulfillment_status": f"Cannot change fulfillment from {order.fulfillment_status} to {new_status}.",
            })
        old = order.fulfillment_status
        order.fulfillment_status = new_status
        db.flush()
        logger.info(f"Order {order.order_number} fulfillment {old} -> {new_status}")
        return order


# Singletons
order_committer = OrderCommitter(notifier=order_notifier)
order_service = OrderService()
