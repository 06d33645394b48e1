"""
Catalog Module - Schemas
==========================
Request bodies for the back office and the product serializer.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from modules.catalog.models import Product


class ProductCreate(BaseModel):
    name: str = Field(..., max_length=200)
    description: str = Field("", max_length=500)
    long_description: Optional[str] = None
    price: Decimal
    image_url: Optional[str] = None
    category: str
    weight: Optional[str] = Field(None, max_length=50)
    stock_quantity: int = 0
    is_active: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    long_description: Optional[str] = None
    price: Optional[Decimal] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    weight: Optional[str] = Field(None, max_length=50)
    stock_quantity: Optional[int] = None
    is_active: Optional[bool] = None


def product_to_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "long_description": p.long_description,
        "price": str(p.price),
        "image_url": p.image_url,
        "category": p.category,
        "weight": p.weight,
        "stock_quantity": p.stock_quantity,
        "is_active": p.is_active,
    }
