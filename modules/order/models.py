"""
Order Module - Models
======================
Orders are written only after a payment has been verified. Each item keeps a
name/price snapshot so the order survives later catalog edits.

OrderReconciliation queues verified payments whose order write failed.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text, JSON,
    ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class FulfillmentStatus(str, enum.Enum):
    NEW = "new"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ReconciliationStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True)

    # Customer
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(254), nullable=False, index=True)
    customer_phone = Column(String(20), nullable=False)
    shipping_address = Column(Text, nullable=False)
    pin_code = Column(String(6), nullable=False)

    # Amounts (INR)
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_charge = Column(Numeric(12, 2), default=0, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)

    status = Column(String, default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(String, nullable=True)           # gateway's view: captured / authorized
    fulfillment_status = Column(String, default=FulfillmentStatus.NEW, nullable=False)

    # Payment (idempotency keys: merchant_reference, gateway_payment_id)
    merchant_reference = Column(String(64), unique=True, nullable=False)
    gateway_order_id = Column(String(64), nullable=True, index=True)
    gateway_payment_id = Column(String(64), unique=True, nullable=True)
    gateway_signature = Column(String(128), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    __table_args__ = (
        CheckConstraint("shipping_charge >= 0", name="ck_order_shipping"),
    )

    @property
    def status_label(self) -> str:
        labels = {
            OrderStatus.PENDING: "Pending",
            OrderStatus.PAID: "Paid",
            OrderStatus.FAILED: "Failed",
        }
        return labels.get(self.status, self.status)

    @property
    def fulfillment_label(self) -> str:
        labels = {
            FulfillmentStatus.NEW: "New",
            FulfillmentStatus.CONFIRMED: "Confirmed",
            FulfillmentStatus.SHIPPED: "Shipped",
            FulfillmentStatus.DELIVERED: "Delivered",
            FulfillmentStatus.CANCELLED: "Cancelled",
        }
        return labels.get(self.fulfillment_status, "—")

    def __repr__(self):
        return f"<Order {self.order_number} {self.total_amount} {self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    # Snapshot at time of purchase
    product_name = Column(String(200), nullable=False)
    product_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_qty"),
    )


class OrderReconciliation(Base):
    __tablename__ = "order_reconciliations"

    id = Column(Integer, primary_key=True)
    merchant_reference = Column(String(64), unique=True, nullable=False)
    gateway_order_id = Column(String(64), nullable=True)
    gateway_payment_id = Column(String(64), nullable=True)
    payload = Column(JSON, nullable=False)                 # everything needed to re-run the commit
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    status = Column(String, default=ReconciliationStatus.PENDING, nullable=False, index=True)
    order_number = Column(String(40), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<OrderReconciliation {self.merchant_reference} {self.status} x{self.attempts}>"
