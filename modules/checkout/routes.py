"""
Checkout Routes
=================
Payment handshake for the session cart:
  POST /api/checkout                    form -> gateway order + widget options
  POST /api/checkout/{ref}/complete     widget success tokens -> order
  POST /api/checkout/{ref}/cancel       widget dismissed
  GET  /api/checkout/{ref}              attempt status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from modules.cart.deps import get_cart_session
from modules.checkout.schemas import CheckoutRequest, PaymentTokens
from modules.payment.schemas import WidgetTokens
from modules.checkout.service import CheckoutOrchestrator, get_checkout_orchestrator

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("")
async def begin_checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    return orchestrator.begin(db, session_id, body.model_dump())


@router.post("/{merchant_reference}/complete")
async def complete_checkout(
    merchant_reference: str,
    body: WidgetTokens,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    tokens = PaymentTokens(
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        gateway_signature=body.gateway_signature,
    )
    return orchestrator.complete(db, session_id, merchant_reference, tokens)


@router.post("/{merchant_reference}/cancel")
async def cancel_checkout(
    merchant_reference: str,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    return orchestrator.cancel(db, session_id, merchant_reference)


@router.get("/{merchant_reference}")
async def checkout_status(
    merchant_reference: str,
    db: Session = Depends(get_db),
    session_id: str = Depends(get_cart_session),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    return orchestrator.get_status(db, session_id, merchant_reference)
