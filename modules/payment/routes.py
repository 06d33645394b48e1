"""
Payment Routes
================
Server-side verification of widget tokens. The merchant secret stays here.
Only gateway orders created for the caller's own cart session are checked.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import NotFoundError
from modules.cart.deps import get_cart_session
from modules.checkout.models import CheckoutAttempt
from modules.payment.schemas import WidgetTokens
from modules.payment.service import payment_verification_service

router = APIRouter(prefix="/api/payments", tags=["payment"])


def get_verifier():
    return payment_verification_service


@router.post("/verify")
async def verify_payment(
    body: WidgetTokens,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
    verifier=Depends(get_verifier),
):
    owned = db.query(CheckoutAttempt.id).filter(
        CheckoutAttempt.gateway_order_id == body.gateway_order_id,
        CheckoutAttempt.session_id == session_id,
    ).first()
    if not owned:
        raise NotFoundError("Payment not found.")

    result = verifier.verify(body.gateway_order_id, body.gateway_payment_id, body.gateway_signature)
    return result.as_dict()
