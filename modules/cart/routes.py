"""
Cart Routes
=============
Session cart: view with totals, add, change quantity, remove.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from modules.cart.deps import get_cart_session
from modules.cart.service import cart_service
from modules.pricing.calculator import compute_totals, lines_from_cart_items
from modules.pricing.service import cart_config_provider

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=99)


class UpdateItemRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=99)


def _cart_payload(db: Session, session_id: str) -> dict:
    items = cart_service.get_items(db, session_id)
    totals = compute_totals(lines_from_cart_items(items), cart_config_provider.get(db))
    return {
        "items": [
            {
                "id": it.id,
                "product_id": it.product_id,
                "name": it.product.name if it.product else None,
                "price": str(it.product.price) if it.product else None,
                "image_url": it.product.image_url if it.product else None,
                "weight": it.product.weight if it.product else None,
                "quantity": it.quantity,
            }
            for it in items
        ],
        "count": sum(it.quantity for it in items),
        "totals": totals.as_dict(),
    }


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("")
async def view_cart(db: Session = Depends(get_db), session_id: str = Depends(get_cart_session)):
    return _cart_payload(db, session_id)


# ==========================================
# ➕➖ Update Cart
# ==========================================

@router.post("/items")
async def add_to_cart(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
):
    cart_service.add_item(db, session_id, body.product_id, body.quantity)
    db.commit()
    return _cart_payload(db, session_id)


@router.patch("/items/{item_id}")
async def update_cart_item(
    item_id: int,
    body: UpdateItemRequest,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
):
    cart_service.update_quantity(db, session_id, item_id, body.quantity)
    db.commit()
    return _cart_payload(db, session_id)


@router.delete("/items/{item_id}")
async def remove_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
):
    cart_service.remove_item(db, session_id, item_id)
    db.commit()
    return _cart_payload(db, session_id)
