"""
Checkout Module - Orchestrator
================================
Drives one checkout attempt through the payment handshake:

    begin()     Idle -> AwaitingGatewayOrder -> AwaitingUserPayment
                (returns the widget options; the customer pays in the browser)
    complete()  AwaitingUserPayment -> VerifyingPayment -> PersistingOrder -> Completed
    cancel()    AwaitingUserPayment -> Failed(UserCancelled)

Amounts are always recomputed here from the session cart; nothing the client
sends about prices is used. No Order row exists before verification passed.

Collaborators (gateway, verifier, committer, config provider, reconciliation
queue, cart store) are passed to the constructor.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import (
    ValidationError, NotFoundError, CheckoutInProgressError, InvalidTransitionError,
    GatewayUnavailableError, PaymentVerificationError, PersistenceError,
)
from common.helpers import now_utc, as_utc, money, to_minor_units, generate_merchant_reference
from config.settings import CURRENCY, STORE_NAME, PAYMENT_TIMEOUT_MINUTES
from modules.cart.service import CartService, cart_service
from modules.checkout.models import CheckoutAttempt
from modules.checkout.schemas import CustomerDetails, PaymentTokens, validate_customer
from modules.checkout.states import (
    CheckoutState, FailureReason, IN_FLIGHT, can_transition, transition,
)
from modules.order.reconciliation import ReconciliationService, reconciliation_service
from modules.order.service import PaymentRecord, order_committer
from modules.payment.gateways import GatewayOrderRequest
from modules.payment.gateways.razorpay import checkout_widget_options
from modules.payment.service import payment_gateway, payment_verification_service
from modules.pricing.calculator import CartTotals, compute_totals, lines_from_cart_items, cart_fingerprint
from modules.pricing.service import cart_config_provider

logger = logging.getLogger("mimasa.checkout")

S = CheckoutState

# Verifier reasons that say nothing about the payment itself; the same
# tokens may be retried once the gateway answers again.
UNDETERMINED_REASONS = frozenset({"gateway_unreachable", "verification_error", "secret_missing"})


class CheckoutOrchestrator:

    def __init__(
        self,
        gateway,
        verifier,
        committer,
        config_provider,
        reconciliation: ReconciliationService = reconciliation_service,
        cart: CartService = cart_service,
        currency: str = CURRENCY,
        store_name: str = STORE_NAME,
        payment_timeout_minutes: int = PAYMENT_TIMEOUT_MINUTES,
    ):
        self.gateway = gateway
        self.verifier = verifier
        self.committer = committer
        self.config_provider = config_provider
        self.reconciliation = reconciliation
        self.cart = cart
        self.currency = currency
        self.store_name = store_name
        self.payment_timeout = timedelta(minutes=payment_timeout_minutes)

    # ==========================================
    # Begin: create the gateway order
    # ==========================================

    def begin(self, db: Session, session_id: str, form: dict) -> dict:
        customer = validate_customer(form)

        items = self.cart.get_items(db, session_id)
        if not items:
            raise ValidationError("Your cart is empty.", fields={"cart": "Your cart is empty."})
        unavailable = [it.product_id for it in items if it.product is None or not it.product.is_active]
        lines = lines_from_cart_items(items)
        totals = compute_totals(lines, self.config_provider.get(db))
        if totals.unresolved_items or unavailable:
            raise ValidationError(
                "Some items in your cart are no longer available.",
                fields={"cart": "Remove unavailable items before checking out."},
            )
        fingerprint = cart_fingerprint(lines)

        current = self._active_attempt(db, session_id)
        if current is not None:
            if current.state in {s.value for s in IN_FLIGHT}:
                logger.info(f"Checkout already in flight for session {session_id[:8]}: {current.merchant_reference}")
                raise CheckoutInProgressError()
            if current.state == S.AWAITING_USER_PAYMENT.value:
                if current.cart_fingerprint == fingerprint:
                    self._apply_customer(current, customer)
                    db.commit()
                    logger.info(f"Re-using gateway order {current.gateway_order_id} for {current.merchant_reference}")
                    return self._widget_response(current)
                transition(current, S.FAILED, FailureReason.ABANDONED)
                db.commit()
                logger.info(f"Checkout {current.merchant_reference} abandoned: cart changed")

        attempt = CheckoutAttempt(
            merchant_reference=generate_merchant_reference(),
            session_id=session_id,
            state=S.IDLE.value,
            items_snapshot=[
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "unit_price": str(money(line.unit_price)),
                    "quantity": line.quantity,
                }
                for line in lines
            ],
            cart_fingerprint=fingerprint,
            subtotal=totals.subtotal,
            shipping_charge=totals.shipping_charge,
            total_amount=totals.total,
            amount_minor=to_minor_units(totals.total),
            currency=self.currency,
        )
        self._apply_customer(attempt, customer)
        transition(attempt, S.AWAITING_GATEWAY_ORDER)
        db.add(attempt)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise CheckoutInProgressError()

        self._create_gateway_order(db, attempt, customer)
        return self._widget_response(attempt)

    def _create_gateway_order(self, db: Session, attempt: CheckoutAttempt, customer: CustomerDetails):
        request = GatewayOrderRequest(
            amount_minor=attempt.amount_minor,
            currency=attempt.currency,
            receipt=attempt.merchant_reference,
            notes={"customer_email": customer.email, "customer_phone": customer.phone},
        )
        try:
            result = self.gateway.create_order(request)
        except Exception:
            logger.exception(f"Gateway raised creating order for {attempt.merchant_reference}")
            result = None

        if result is not None and result.success and result.amount_minor not in (None, attempt.amount_minor):
            logger.error(
                f"Gateway order {result.gateway_order_id} amount {result.amount_minor} "
                f"!= requested {attempt.amount_minor} for {attempt.merchant_reference}"
            )
            result = None

        if result is None or not result.success:
            reason = result.error_message if result is not None else "gateway error"
            transition(attempt, S.FAILED, FailureReason.GATEWAY_UNAVAILABLE)
            db.commit()
            logger.warning(f"Gateway order failed for {attempt.merchant_reference}: {reason}")
            raise GatewayUnavailableError()

        attempt.gateway_order_id = result.gateway_order_id
        transition(attempt, S.AWAITING_USER_PAYMENT)
        db.commit()
        logger.info(
            f"Checkout {attempt.merchant_reference} awaiting payment: gateway order "
            f"{attempt.gateway_order_id} amount={attempt.amount_minor} {attempt.currency}"
        )

    # ==========================================
    # Widget outcomes: cancel / complete
    # ==========================================

    def cancel(self, db: Session, session_id: str, merchant_reference: str) -> dict:
        """Customer dismissed the payment dialog. The cart is left untouched."""
        attempt = self._get_owned(db, session_id, merchant_reference)
        if attempt.state == S.AWAITING_USER_PAYMENT.value:
            transition(attempt, S.FAILED, FailureReason.USER_CANCELLED)
            db.commit()
            logger.info(f"Checkout {merchant_reference} cancelled by customer")
        elif attempt.state != S.FAILED.value:
            raise InvalidTransitionError(f"Checkout cannot be cancelled while {attempt.state}.")
        return self.status_payload(attempt)

    def complete(self, db: Session, session_id: str, merchant_reference: str, tokens: PaymentTokens) -> dict:
        attempt = self._get_owned(db, session_id, merchant_reference)
        if attempt.state == S.COMPLETED.value:
            return self.status_payload(attempt)

        if not can_transition(attempt.state, S.VERIFYING_PAYMENT, attempt.failure_reason):
            if attempt.state in {s.value for s in IN_FLIGHT}:
                raise CheckoutInProgressError()
            raise InvalidTransitionError(f"Checkout cannot accept a payment while {attempt.state}.")

        attempt = self._claim_for_verification(db, attempt)
        if attempt.state == S.COMPLETED.value:
            return self.status_payload(attempt)

        if tokens.gateway_order_id != attempt.gateway_order_id:
            self._fail_verification(db, attempt, tokens, "gateway_order_mismatch", None)

        try:
            result = self.verifier.verify(tokens.gateway_order_id, tokens.gateway_payment_id, tokens.gateway_signature)
        except Exception:
            logger.exception(f"Verifier raised for {merchant_reference}")
            result = None

        if result is None or not result.verified:
            self._fail_verification(
                db, attempt, tokens,
                result.reason if result is not None else "verification_error",
                result.payment_status if result is not None else None,
            )

        attempt.gateway_payment_id = tokens.gateway_payment_id
        attempt.gateway_signature = tokens.gateway_signature
        attempt.payment_status = result.payment_status or ""
        transition(attempt, S.PERSISTING_ORDER)
        db.commit()

        return self._persist(db, attempt, self._payment_record(attempt))

    def _claim_for_verification(self, db: Session, attempt: CheckoutAttempt) -> CheckoutAttempt:
        """Atomically move the attempt into VerifyingPayment; a concurrent completer loses."""
        if attempt.failure_reason is None:
            reason_matches = CheckoutAttempt.failure_reason.is_(None)
        else:
            reason_matches = CheckoutAttempt.failure_reason == attempt.failure_reason

        claimed = db.query(CheckoutAttempt).filter(
            and_(
                CheckoutAttempt.id == attempt.id,
                CheckoutAttempt.state == attempt.state,
                reason_matches,
            )
        ).update(
            {
                CheckoutAttempt.state: S.VERIFYING_PAYMENT.value,
                CheckoutAttempt.failure_reason: None,
            },
            synchronize_session=False,
        )
        db.commit()
        db.refresh(attempt)
        if not claimed:
            if attempt.state == S.COMPLETED.value:
                return attempt
            raise CheckoutInProgressError()
        return attempt

    def _fail_verification(self, db: Session, attempt: CheckoutAttempt, tokens: PaymentTokens, reason: str, payment_status: Optional[str]):
        failure = (
            FailureReason.VERIFICATION_UNCONFIRMED if reason in UNDETERMINED_REASONS
            else FailureReason.VERIFICATION_FAILED
        )
        transition(attempt, S.FAILED, failure)
        db.commit()
        logger.warning(
            f"Payment verification FAILED ({failure.value}) ref={attempt.merchant_reference} session={attempt.session_id} "
            f"expected_order={attempt.gateway_order_id} claimed_order={tokens.gateway_order_id} "
            f"payment={tokens.gateway_payment_id} reason={reason} status={payment_status} "
            f"amount={attempt.amount_minor} email={attempt.customer_email}"
        )
        raise PaymentVerificationError()

    # ==========================================
    # Persist
    # ==========================================

    def _persist(self, db: Session, attempt: CheckoutAttempt, payment: PaymentRecord) -> dict:
        ref = attempt.merchant_reference
        try:
            result = self.committer.commit(
                db,
                session_id=attempt.session_id,
                customer=attempt.customer,
                items=attempt.items_snapshot,
                totals=self._totals(attempt),
                payment=payment,
                merchant_reference=ref,
                clear_cart=self._cart_unchanged(db, attempt),
            )
        except PersistenceError as e:
            db.rollback()
            attempt = self._get_by_reference(db, ref)
            transition(attempt, S.FAILED, FailureReason.PERSISTENCE_FAILURE)
            self.reconciliation.enqueue(
                db,
                merchant_reference=ref,
                gateway_order_id=payment.gateway_order_id,
                gateway_payment_id=payment.gateway_payment_id,
                payload=self._reconciliation_payload(attempt, payment),
                error=e.message,
            )
            db.commit()
            raise

        attempt = self._get_by_reference(db, ref)
        attempt.order_number = result.order_number
        transition(attempt, S.COMPLETED)
        db.commit()
        logger.info(f"Checkout {ref} completed: order {result.order_number}")
        return self.status_payload(attempt)

    def recover_pending(self, db: Session) -> dict:
        """Re-run queued order writes. Same idempotency keys, so at most one order per payment."""
        resolved = failed = 0
        for rec in self.reconciliation.pending(db):
            ref = rec.merchant_reference
            payload = rec.payload or {}
            attempt = self._get_by_reference(db, ref, required=False)
            payment = PaymentRecord(**payload["payment"])
            try:
                result = self.committer.commit(
                    db,
                    session_id=payload["session_id"],
                    customer=payload["customer"],
                    items=payload["items"],
                    totals=CartTotals(
                        subtotal=money(payload["totals"]["subtotal"]),
                        shipping_charge=money(payload["totals"]["shipping_charge"]),
                        total=money(payload["totals"]["total"]),
                    ),
                    payment=payment,
                    merchant_reference=ref,
                    clear_cart=attempt is not None and self._cart_unchanged(db, attempt),
                )
            except PersistenceError as e:
                db.rollback()
                self.reconciliation.mark_failed(db, rec, e.message)
                db.commit()
                failed += 1
                continue

            self.reconciliation.mark_resolved(db, rec, result.order_number)
            if attempt is not None and can_transition(attempt.state, S.COMPLETED, attempt.failure_reason):
                attempt.order_number = result.order_number
                transition(attempt, S.COMPLETED)
            db.commit()
            resolved += 1

        if resolved or failed:
            logger.info(f"Reconciliation run: {resolved} resolved, {failed} still failing")
        return {"resolved": resolved, "failed": failed}

    # ==========================================
    # Timeouts
    # ==========================================

    def expire_stale(self, db: Session, now=None) -> int:
        """
        Release attempts that stopped moving, so the session can check out again.

            AwaitingUserPayment   -> Failed(Timeout)
            AwaitingGatewayOrder  -> Failed(GatewayUnavailable)
            VerifyingPayment      -> Failed(VerificationUnconfirmed), tokens may be retried
            PersistingOrder       -> Failed(PersistenceFailure), queued for reconciliation
        """
        now = now or now_utc()
        cutoff = now - self.payment_timeout
        candidates = db.query(CheckoutAttempt).filter(
            CheckoutAttempt.state.in_([
                S.AWAITING_USER_PAYMENT.value, S.AWAITING_GATEWAY_ORDER.value,
                S.VERIFYING_PAYMENT.value, S.PERSISTING_ORDER.value,
            ])
        ).all()

        count = 0
        for attempt in candidates:
            if as_utc(attempt.updated_at) >= cutoff:
                continue
            if attempt.state == S.PERSISTING_ORDER.value:
                # Payment already verified: the order must still be written
                payment = self._payment_record(attempt)
                transition(attempt, S.FAILED, FailureReason.PERSISTENCE_FAILURE)
                self.reconciliation.enqueue(
                    db,
                    merchant_reference=attempt.merchant_reference,
                    gateway_order_id=payment.gateway_order_id,
                    gateway_payment_id=payment.gateway_payment_id,
                    payload=self._reconciliation_payload(attempt, payment),
                    error="order write interrupted",
                )
            else:
                reason = {
                    S.AWAITING_USER_PAYMENT.value: FailureReason.TIMEOUT,
                    S.AWAITING_GATEWAY_ORDER.value: FailureReason.GATEWAY_UNAVAILABLE,
                    S.VERIFYING_PAYMENT.value: FailureReason.VERIFICATION_UNCONFIRMED,
                }[attempt.state]
                transition(attempt, S.FAILED, reason)
            logger.warning(f"Checkout {attempt.merchant_reference} expired as {attempt.failure_reason}")
            count += 1

        if count:
            db.commit()
            logger.info(f"Expired {count} stale checkout attempts")
        return count

    # ==========================================
    # Queries
    # ==========================================

    def get_status(self, db: Session, session_id: str, merchant_reference: str) -> dict:
        return self.status_payload(self._get_owned(db, session_id, merchant_reference))

    def status_payload(self, attempt: CheckoutAttempt) -> dict:
        return {
            "merchant_reference": attempt.merchant_reference,
            "state": attempt.state,
            "failure_reason": attempt.failure_reason,
            "order_number": attempt.order_number,
            "totals": self._totals(attempt).as_dict(),
        }

    # ==========================================
    # Private helpers
    # ==========================================

    def _widget_response(self, attempt: CheckoutAttempt) -> dict:
        data = self.status_payload(attempt)
        data["checkout"] = checkout_widget_options(
            self.gateway,
            gateway_order_id=attempt.gateway_order_id,
            amount_minor=attempt.amount_minor,
            currency=attempt.currency,
            store_name=self.store_name,
            customer_name=attempt.customer_name,
            customer_email=attempt.customer_email,
            customer_phone=attempt.customer_phone,
            merchant_reference=attempt.merchant_reference,
        )
        return data

    def _active_attempt(self, db: Session, session_id: str) -> Optional[CheckoutAttempt]:
        return db.query(CheckoutAttempt).filter(CheckoutAttempt.active_session_id == session_id).first()

    def _get_owned(self, db: Session, session_id: str, merchant_reference: str) -> CheckoutAttempt:
        attempt = db.query(CheckoutAttempt).filter(
            CheckoutAttempt.merchant_reference == merchant_reference,
            CheckoutAttempt.session_id == session_id,
        ).first()
        if not attempt:
            raise NotFoundError("Checkout not found.")
        return attempt

    def _get_by_reference(self, db: Session, merchant_reference: str, required: bool = True) -> Optional[CheckoutAttempt]:
        attempt = db.query(CheckoutAttempt).filter(CheckoutAttempt.merchant_reference == merchant_reference).first()
        if attempt is None and required:
            raise NotFoundError("Checkout not found.")
        return attempt

    def _cart_unchanged(self, db: Session, attempt: CheckoutAttempt) -> bool:
        """True when the session cart still holds exactly what was paid for."""
        lines = lines_from_cart_items(self.cart.get_items(db, attempt.session_id))
        return bool(lines) and cart_fingerprint(lines) == attempt.cart_fingerprint

    @staticmethod
    def _apply_customer(attempt: CheckoutAttempt, customer: CustomerDetails):
        attempt.customer_name = customer.name
        attempt.customer_email = customer.email
        attempt.customer_phone = customer.phone
        attempt.shipping_address = customer.address
        attempt.pin_code = customer.pin_code

    @staticmethod
    def _totals(attempt: CheckoutAttempt) -> CartTotals:
        return CartTotals(
            subtotal=money(attempt.subtotal),
            shipping_charge=money(attempt.shipping_charge),
            total=money(attempt.total_amount),
        )

    @staticmethod
    def _payment_record(attempt: CheckoutAttempt) -> PaymentRecord:
        return PaymentRecord(
            gateway_order_id=attempt.gateway_order_id,
            gateway_payment_id=attempt.gateway_payment_id,
            gateway_signature=attempt.gateway_signature or "",
            payment_status=attempt.payment_status or "",
        )

    def _reconciliation_payload(self, attempt: CheckoutAttempt, payment: PaymentRecord) -> dict:
        totals = self._totals(attempt)
        return {
            "session_id": attempt.session_id,
            "customer": attempt.customer,
            "items": attempt.items_snapshot,
            "totals": {
                "subtotal": str(totals.subtotal),
                "shipping_charge": str(totals.shipping_charge),
                "total": str(totals.total),
            },
            "payment": {
                "gateway_order_id": payment.gateway_order_id,
                "gateway_payment_id": payment.gateway_payment_id,
                "gateway_signature": payment.gateway_signature,
                "payment_status": payment.payment_status,
            },
        }


# Shared instance (routes resolve it through get_checkout_orchestrator)
checkout_orchestrator = CheckoutOrchestrator(
    gateway=payment_gateway,
    verifier=payment_verification_service,
    committer=order_committer,
    config_provider=cart_config_provider,
)


def get_checkout_orchestrator() -> CheckoutOrchestrator:
    return checkout_orchestrator
