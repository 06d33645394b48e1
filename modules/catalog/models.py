"""
Catalog Module - Models
========================
Product records. Read-only to the storefront and checkout; edited from the
admin back office only.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Text, DateTime, CheckConstraint,
)
from sqlalchemy.sql import func
from config.database import Base


class ProductCategory(str, enum.Enum):
    GRAVY = "gravy"
    MARINADE = "marinade"
    POWDER = "powder"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    long_description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)                 # INR
    image_url = Column(String, nullable=True)
    category = Column(String, nullable=False, default=ProductCategory.GRAVY)
    weight = Column(String, nullable=True)                         # e.g. "250g"
    stock_quantity = Column(Integer, default=0, nullable=False)    # informational only
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price"),
    )

    @property
    def category_label(self) -> str:
        labels = {
            ProductCategory.GRAVY: "Gravy",
            ProductCategory.MARINADE: "Marinade",
            ProductCategory.POWDER: "Powder",
        }
        return labels.get(self.category, self.category)

    def __repr__(self):
        return f"<Product {self.name} ({self.price})>"
