"""
Checkout Module - Models
=========================
CheckoutAttempt is the server-side record of one run of the checkout state
machine. It carries the priced cart snapshot across the two requests of the
payment handshake. It is never an order.
"""

from sqlalchemy import Column, Integer, String, Numeric, Text, JSON, DateTime
from sqlalchemy.sql import func
from config.database import Base

from modules.checkout.states import CheckoutState


class CheckoutAttempt(Base):
    __tablename__ = "checkout_attempts"

    id = Column(Integer, primary_key=True)
    merchant_reference = Column(String(64), unique=True, nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    # Equals session_id while the attempt is in flight, NULL once terminal:
    # the unique index allows one in-flight attempt per session.
    active_session_id = Column(String(64), unique=True, nullable=True)

    state = Column(String(32), default=CheckoutState.IDLE, nullable=False, index=True)
    failure_reason = Column(String(32), nullable=True)

    # Customer details as submitted
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(254), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    shipping_address = Column(Text, nullable=False)
    pin_code = Column(String(6), nullable=False)

    # Server-side priced snapshot
    items_snapshot = Column(JSON, nullable=False)
    cart_fingerprint = Column(String(64), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_charge = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    amount_minor = Column(Integer, nullable=False)             # paise
    currency = Column(String(3), default="INR", nullable=False)

    # Gateway correlation
    gateway_order_id = Column(String(64), unique=True, nullable=True)
    gateway_payment_id = Column(String(64), nullable=True)
    # Set once verified so an interrupted write can still be reconciled
    gateway_signature = Column(String(128), nullable=True)
    payment_status = Column(String(20), nullable=True)
    order_number = Column(String(40), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def customer(self) -> dict:
        return {
            "name": self.customer_name,
            "email": self.customer_email,
            "phone": self.customer_phone,
            "address": self.shipping_address,
            "pin_code": self.pin_code,
        }

    def __repr__(self):
        return f"<CheckoutAttempt {self.merchant_reference} {self.state}>"
