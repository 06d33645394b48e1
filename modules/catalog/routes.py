"""
Catalog Routes
================
Storefront product listing and detail (JSON).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import NotFoundError
from modules.catalog.schemas import product_to_dict
from modules.catalog.service import product_service

router = APIRouter(prefix="/api/products", tags=["catalog"])


@router.get("")
async def list_products(db: Session = Depends(get_db)):
    return [product_to_dict(p) for p in product_service.list_active(db)]


@router.get("/{product_id}")
async def product_detail(product_id: int, db: Session = Depends(get_db)):
    product = product_service.get_by_id(db, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not found.")
    return product_to_dict(product)
