"""
Catalog Module - Admin Routes
===============================
Product CRUD for the back office. All routes require admin authentication.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_admin
from modules.catalog.schemas import ProductCreate, ProductUpdate, product_to_dict
from modules.catalog.service import product_service

router = APIRouter(prefix="/admin/products", tags=["catalog-admin"])


@router.get("")
async def list_products(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    products, total = product_service.list_all(db, page=page, per_page=per_page)
    return {
        "items": [product_to_dict(p) for p in products],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.post("", status_code=201)
async def add_product(body: ProductCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    product = product_service.create(db, body.model_dump())
    db.commit()
    return product_to_dict(product)


@router.put("/{product_id}")
async def update_product(
    product_id: int,
    body: ProductUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    product = product_service.update(db, product_id, body.model_dump(exclude_unset=True))
    db.commit()
    return product_to_dict(product)


@router.post("/{product_id}/toggle")
async def toggle_product(product_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    product = product_service.toggle_active(db, product_id)
    db.commit()
    return product_to_dict(product)
