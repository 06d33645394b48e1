"""
Pricing Module - Models
========================
CartConfig: admin-editable key/value store for shipping fee and
free-shipping threshold.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from config.database import Base

# Config keys
SHIPPING_FEE_KEY = "shipping"
FREE_SHIPPING_KEY = "free_shipping"

CONFIG_LABELS = {
    SHIPPING_FEE_KEY: "Shipping Charge (₹)",
    FREE_SHIPPING_KEY: "Free Shipping Threshold (₹)",
}


class CartConfig(Base):
    __tablename__ = "cart_config"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    value = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def label(self) -> str:
        return CONFIG_LABELS.get(self.name, self.name)

    def __repr__(self):
        return f"<CartConfig {self.name}={self.value}>"
