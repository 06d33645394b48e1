"""
Order Module - Admin Routes
==============================
Order management for admin: list, detail, fulfillment status, invoice PDF.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_admin
from modules.notification.invoice import invoice_filename
from modules.notification.service import invoice_generator, order_notifier
from modules.order.schemas import order_to_dict
from modules.order.service import order_service

router = APIRouter(prefix="/admin/orders", tags=["order-admin"])


class FulfillmentUpdate(BaseModel):
    fulfillment_status: str


@router.get("")
async def admin_orders(
    status: Optional[str] = Query(None),
    fulfillment: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(25, ge=1, le=100),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    orders, total = order_service.list_orders(db, status=status, fulfillment=fulfillment, page=page, per_page=per_page)
    return {
        "items": [order_to_dict(o) for o in orders],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.get("/{order_number}")
async def admin_order_detail(order_number: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    return order_to_dict(order_service.get_by_number(db, order_number), with_items=True)


@router.post("/{order_number}/fulfillment")
async def update_fulfillment(
    order_number: str,
    body: FulfillmentUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    order = order_service.update_fulfillment(db, order_number, body.fulfillment_status)
    db.commit()
    return order_to_dict(order)


@router.get("/{order_number}/invoice")
async def download_invoice(order_number: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    order = order_service.get_by_number(db, order_number)
    pdf = invoice_generator.generate_pdf(order)
    filename = invoice_filename(order.order_number)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{order_number}/resend-confirmation")
async def resend_confirmation(order_number: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Re-send the confirmation email (with invoice) to the customer."""
    order = order_service.get_by_number(db, order_number)
    return {"sent": order_notifier.send_order_confirmation(order)}
