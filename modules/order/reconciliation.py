"""
Order Module - Reconciliation Queue
=====================================
Verified payments whose order could not be written are queued here with
everything needed to re-run the commit. The scheduler (and the admin retry
button) drains the queue using the same idempotency keys, so a retry can
never create a second order.
"""

import logging
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from config.settings import RECONCILIATION_MAX_ATTEMPTS
from modules.order.models import OrderReconciliation, ReconciliationStatus

logger = logging.getLogger("mimasa.order")


class ReconciliationService:

    def __init__(self, max_attempts: int = RECONCILIATION_MAX_ATTEMPTS):
        self.max_attempts = max_attempts

    def enqueue(
        self,
        db: Session,
        merchant_reference: str,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        payload: dict,
        error: str,
    ) -> OrderReconciliation:
        """Queue (or re-queue) a failed order write. Caller commits."""
        rec = db.query(OrderReconciliation).filter(
            OrderReconciliation.merchant_reference == merchant_reference,
        ).first()
        if rec is None:
            rec = OrderReconciliation(
                merchant_reference=merchant_reference,
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                payload=payload,
                attempts=1,
            )
            db.add(rec)
        else:
            rec.payload = payload
            rec.attempts = (rec.attempts or 0) + 1
        rec.status = ReconciliationStatus.PENDING.value
        rec.last_error = error
        db.flush()
        logger.error(f"Order write queued for reconciliation: ref={merchant_reference} payment={gateway_payment_id}")
        return rec

    def pending(self, db: Session, limit: int = 50) -> List[OrderReconciliation]:
        return (
            db.query(OrderReconciliation)
            .filter(OrderReconciliation.status == ReconciliationStatus.PENDING.value)
            .order_by(OrderReconciliation.created_at, OrderReconciliation.id)
            .limit(limit)
            .all()
        )

    def list_all(self, db: Session, status: Optional[str] = None) -> List[OrderReconciliation]:
        q = db.query(OrderReconciliation)
        if status:
            q = q.filter(OrderReconciliation.status == status)
        return q.order_by(desc(OrderReconciliation.created_at), desc(OrderReconciliation.id)).all()

    def mark_resolved(self, db: Session, rec: OrderReconciliation, order_number: str):
        rec.status = ReconciliationStatus.RESOLVED.value
        rec.order_number = order_number
        rec.last_error = None
        db.flush()
        logger.info(f"Reconciliation {rec.merchant_reference} resolved as order {order_number}")

    def mark_failed(self, db: Session, rec: OrderReconciliation, error: str):
        """Count a failed retry; give up (abandoned, needs a human) after max_attempts."""
        rec.attempts = (rec.attempts or 0) + 1
        rec.last_error = error
        if rec.attempts >= self.max_attempts:
            rec.status = ReconciliationStatus.ABANDONED.value
            logger.error(
                f"Reconciliation {rec.merchant_reference} abandoned after {rec.attempts} attempts; "
                f"payment {rec.gateway_payment_id} needs manual handling"
            )
        db.flush()


# Singleton
reconciliation_service = ReconciliationService()
