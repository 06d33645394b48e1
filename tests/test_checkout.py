from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from common.exceptions import (
    ValidationError, NotFoundError, CheckoutInProgressError, InvalidTransitionError,
    GatewayUnavailableError, PaymentVerificationError, PersistenceError,
)
from common.helpers import now_utc
from modules.cart.service import cart_service
from modules.checkout.models import CheckoutAttempt
from modules.checkout.schemas import PaymentTokens
from modules.checkout.states import CheckoutState, FailureReason, can_transition, transition
from modules.order.models import Order, OrderItem, OrderReconciliation, ReconciliationStatus
from modules.order.service import OrderCommitter, PaymentRecord

from conftest import SESSION, VALID_FORM


class FlakyCommitter(OrderCommitter):
    """Fails the order-items insert a fixed number of times."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    def _add_items(self, db, order, items):
        if self.failures > 0:
            self.failures -= 1
            raise OperationalError("INSERT INTO order_items", {}, Exception("database is locked"))
        super()._add_items(db, order, items)


def _begin(orchestrator, db, session_id=SESSION, **overrides):
    return orchestrator.begin(db, session_id, {**VALID_FORM, **overrides})


def _paid_tokens(gateway, sign, started, payment_id="pay_000001", status="captured"):
    order_id = started["checkout"]["gateway_order_id"]
    gateway.pay(order_id, payment_id, status)
    return PaymentTokens(order_id, payment_id, sign(order_id, payment_id))


def _attempt(db, ref):
    db.expire_all()
    return db.query(CheckoutAttempt).filter(CheckoutAttempt.merchant_reference == ref).one()


@pytest.fixture
def gravy(make_product):
    return make_product("Butter Chicken Gravy", "120.00")


@pytest.fixture
def ready_cart(gravy, fill_cart):
    fill_cart((gravy, 2))
    return gravy


# ==========================================
# State machine
# ==========================================

def _fake_attempt(state, reason=None):
    return SimpleNamespace(state=state, failure_reason=reason, session_id=SESSION, active_session_id=None)


def test_happy_path_transitions():
    attempt = _fake_attempt("Idle")
    for target in [
        CheckoutState.AWAITING_GATEWAY_ORDER, CheckoutState.AWAITING_USER_PAYMENT,
        CheckoutState.VERIFYING_PAYMENT, CheckoutState.PERSISTING_ORDER, CheckoutState.COMPLETED,
    ]:
        transition(attempt, target)
    assert attempt.state == "Completed"
    assert attempt.active_session_id is None


def test_completed_is_final():
    with pytest.raises(InvalidTransitionError):
        transition(_fake_attempt("Completed"), CheckoutState.FAILED, FailureReason.TIMEOUT)


def test_failed_needs_reason():
    with pytest.raises(InvalidTransitionError):
        transition(_fake_attempt("AwaitingUserPayment"), CheckoutState.FAILED)


def test_cannot_skip_verification():
    assert not can_transition("AwaitingUserPayment", "PersistingOrder")
    assert not can_transition("AwaitingGatewayOrder", "Completed")


@pytest.mark.parametrize("reason, allowed", [
    ("Timeout", True),
    ("Abandoned", True),
    ("UserCancelled", True),
    ("VerificationUnconfirmed", True),
    ("VerificationFailed", False),
    ("GatewayUnavailable", False),
    ("PersistenceFailure", False),
])
def test_late_payment_reasons(reason, allowed):
    assert can_transition("Failed", "VerifyingPayment", reason) is allowed


def test_only_persistence_failure_reconciles_to_completed():
    assert can_transition("Failed", "Completed", "PersistenceFailure")
    assert not can_transition("Failed", "Completed", "Timeout")


# ==========================================
# Begin
# ==========================================

def test_invalid_form_reports_every_field(db, orchestrator, gateway, ready_cart):
    with pytest.raises(ValidationError) as exc:
        orchestrator.begin(db, SESSION, {"name": " ", "email": "not-an-email", "phone": "12345", "address": "", "pin_code": "4110"})
    assert set(exc.value.fields) == {"name", "email", "phone", "address", "pin_code"}
    assert db.query(CheckoutAttempt).count() == 0
    assert gateway.created == []


def test_form_values_are_normalised(db, orchestrator, ready_cart):
    started = _begin(orchestrator, db, name="  Asha   Kulkarni ", phone="98765-43210")
    attempt = _attempt(db, started["merchant_reference"])
    assert attempt.customer_name == "Asha Kulkarni"
    assert attempt.customer_phone == "9876543210"


def test_empty_cart_rejected(db, orchestrator, gateway):
    with pytest.raises(ValidationError) as exc:
        _begin(orchestrator, db)
    assert "cart" in exc.value.fields
    assert gateway.created == []


def test_unavailable_product_blocks_checkout(db, orchestrator, ready_cart):
    ready_cart.is_active = False
    db.commit()
    with pytest.raises(ValidationError) as exc:
        _begin(orchestrator, db)
    assert "cart" in exc.value.fields


def test_begin_charges_server_side_total(db, orchestrator, gateway, ready_cart):
    started = _begin(orchestrator, db)

    # 2 x 120 + 50 shipping
    assert started["totals"]["total"] == "290.00"
    assert started["checkout"]["amount"] == 29000
    assert started["checkout"]["key"] == "rzp_test_key"
    assert started["state"] == "AwaitingUserPayment"

    _, request = gateway.created[0]
    assert request.amount_minor == 29000
    assert request.currency == "INR"
    assert request.receipt == started["merchant_reference"]
    assert db.query(Order).count() == 0


def test_resubmit_with_same_cart_reuses_gateway_order(db, orchestrator, gateway, ready_cart):
    first = _begin(orchestrator, db)
    second = _begin(orchestrator, db, name="Asha K")
    assert first["merchant_reference"] == second["merchant_reference"]
    assert len(gateway.created) == 1
    assert _attempt(db, first["merchant_reference"]).customer_name == "Asha K"


def test_resubmit_after_cart_change_starts_over(db, orchestrator, gateway, ready_cart, make_product, fill_cart):
    first = _begin(orchestrator, db)
    fill_cart((make_product("Dal Makhani", "110.00"), 1))
    second = _begin(orchestrator, db)

    assert first["merchant_reference"] != second["merchant_reference"]
    assert len(gateway.created) == 2
    old = _attempt(db, first["merchant_reference"])
    assert (old.state, old.failure_reason) == ("Failed", "Abandoned")


def test_second_checkout_while_in_flight_is_rejected(db, orchestrator, ready_cart):
    started = _begin(orchestrator, db)
    attempt = _attempt(db, started["merchant_reference"])
    attempt.state = CheckoutState.VERIFYING_PAYMENT.value
    db.commit()

    with pytest.raises(CheckoutInProgressError):
        _begin(orchestrator, db)


def test_gateway_down_fails_attempt_and_keeps_cart(db, orchestrator, gateway, ready_cart):
    gateway.fail = True
    with pytest.raises(GatewayUnavailableError):
        _begin(orchestrator, db)

    attempt = db.query(CheckoutAttempt).one()
    assert (attempt.state, attempt.failure_reason) == ("Failed", "GatewayUnavailable")
    assert cart_service.get_count(db, SESSION) == 2

    gateway.fail = False
    assert _begin(orchestrator, db)["state"] == "AwaitingUserPayment"


# ==========================================
# Complete: verification
# ==========================================

def test_forged_signature_records_nothing(db, orchestrator, gateway, ready_cart, mailer):
    started = _begin(orchestrator, db)
    order_id = started["checkout"]["gateway_order_id"]
    gateway.pay(order_id, "pay_000001")

    with pytest.raises(PaymentVerificationError) as exc:
        orchestrator.complete(db, SESSION, started["merchant_reference"], PaymentTokens(order_id, "pay_000001", "0" * 64))

    assert exc.value.message == "Payment could not be confirmed, please try again."
    assert db.query(Order).count() == 0
    assert cart_service.get_count(db, SESSION) == 2
    attempt = _attempt(db, started["merchant_reference"])
    assert (attempt.state, attempt.failure_reason) == ("Failed", "VerificationFailed")
    assert mailer.sent == []


@pytest.mark.parametrize("status", ["created", "failed"])
def test_uncaptured_payment_records_nothing(db, orchestrator, gateway, sign, ready_cart, status):
    started = _begin(orchestrator, db)
    tokens = _paid_tokens(gateway, sign, started, status=status)
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, started["merchant_reference"], tokens)
    assert db.query(Order).count() == 0


def test_tokens_for_another_gateway_order_rejected(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    gateway.pay("order_elsewhere", "pay_000009")
    tokens = PaymentTokens("order_elsewhere", "pay_000009", sign("order_elsewhere", "pay_000009"))
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, started["merchant_reference"], tokens)
    assert db.query(Order).count() == 0


def test_failed_verification_cannot_be_replayed(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    order_id = started["checkout"]["gateway_order_id"]
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, started["merchant_reference"], PaymentTokens(order_id, "pay_000001", "0" * 64))

    tokens = _paid_tokens(gateway, sign, started)
    with pytest.raises(InvalidTransitionError):
        orchestrator.complete(db, SESSION, started["merchant_reference"], tokens)


def test_unanswered_lookup_can_be_retried_with_same_tokens(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    ref = started["merchant_reference"]
    order_id = started["checkout"]["gateway_order_id"]
    tokens = PaymentTokens(order_id, "pay_000001", sign(order_id, "pay_000001"))

    # Gateway does not know the payment yet
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, ref, tokens)
    attempt = _attempt(db, ref)
    assert (attempt.state, attempt.failure_reason) == ("Failed", "VerificationUnconfirmed")
    assert attempt.active_session_id is None
    assert db.query(Order).count() == 0

    gateway.pay(order_id, "pay_000001")
    result = orchestrator.complete(db, SESSION, ref, tokens)

    assert result["state"] == "Completed"
    assert db.query(Order).one().gateway_payment_id == "pay_000001"
    assert len(gateway.created) == 1
    assert cart_service.get_count(db, SESSION) == 0


def test_unconfirmed_verification_still_rejects_forgery(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    ref = started["merchant_reference"]
    order_id = started["checkout"]["gateway_order_id"]
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, ref, PaymentTokens(order_id, "pay_000001", sign(order_id, "pay_000001")))

    gateway.pay(order_id, "pay_000001")
    with pytest.raises(PaymentVerificationError):
        orchestrator.complete(db, SESSION, ref, PaymentTokens(order_id, "pay_000001", "0" * 64))
    assert _attempt(db, ref).failure_reason == "VerificationFailed"
    assert db.query(Order).count() == 0


def test_other_session_cannot_complete(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    with pytest.raises(NotFoundError):
        orchestrator.complete(db, "session-zzzzzzzzzzzzzzzzzzzz", started["merchant_reference"], _paid_tokens(gateway, sign, started))


# ==========================================
# Complete: persistence
# ==========================================

def test_verified_payment_becomes_order(db, orchestrator, gateway, sign, ready_cart, mailer):
    started = _begin(orchestrator, db)
    result = orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))

    assert result["state"] == "Completed"
    order = db.query(Order).one()
    assert order.order_number == result["order_number"]
    assert order.order_number.startswith("MIM-")
    assert order.subtotal == Decimal("240.00")
    assert order.shipping_charge == Decimal("50.00")
    assert order.total_amount == Decimal("290.00")
    assert order.status == "paid"
    assert order.payment_status == "captured"
    assert order.gateway_payment_id == "pay_000001"
    assert order.customer_email == "asha@example.com"
    assert [(i.product_name, i.quantity, i.product_price) for i in order.items] == [
        ("Butter Chicken Gravy", 2, Decimal("120.00")),
    ]

    assert cart_service.get_count(db, SESSION) == 0
    assert _attempt(db, started["merchant_reference"]).order_number == order.order_number

    [message] = mailer.sent
    assert message.to_address == "asha@example.com"
    assert message.bcc_addresses == ["orders@mimasa.test"]
    assert message.subject == f"Order Confirmation - {order.order_number}"
    [attachment] = message.attachments
    assert attachment.filename == f"Invoice_{order.order_number.replace('-', '_')}.pdf"
    assert attachment.content.startswith(b"%PDF")


def test_complete_is_idempotent(db, orchestrator, gateway, sign, ready_cart, mailer):
    started = _begin(orchestrator, db)
    tokens = _paid_tokens(gateway, sign, started)
    first = orchestrator.complete(db, SESSION, started["merchant_reference"], tokens)
    second = orchestrator.complete(db, SESSION, started["merchant_reference"], tokens)

    assert first["order_number"] == second["order_number"]
    assert db.query(Order).count() == 1
    assert len(mailer.sent) == 1


def test_committer_returns_existing_order_for_same_payment(db, committer, ready_cart):
    items = [{"product_id": ready_cart.id, "name": "Butter Chicken Gravy", "unit_price": "120.00", "quantity": 2}]
    totals = SimpleNamespace(subtotal=Decimal("240"), shipping_charge=Decimal("50"), total=Decimal("290"))
    payment = PaymentRecord("order_1", "pay_1", "a" * 64, "captured")
    customer = dict(VALID_FORM)

    first = committer.commit(db, SESSION, customer, items, totals, payment, "rcpt_1")
    second = committer.commit(db, SESSION, customer, items, totals, payment, "rcpt_1")

    assert first.created and not second.created
    assert first.order_number == second.order_number
    assert db.query(Order).count() == 1


def test_committer_rejects_inconsistent_totals(db, committer, ready_cart):
    items = [{"product_id": ready_cart.id, "name": "Butter Chicken Gravy", "unit_price": "120.00", "quantity": 2}]
    totals = SimpleNamespace(subtotal=Decimal("240"), shipping_charge=Decimal("50"), total=Decimal("280"))
    with pytest.raises(PersistenceError):
        committer.commit(db, SESSION, dict(VALID_FORM), items, totals, PaymentRecord("o", "p", "s", "captured"), "rcpt_2")
    assert db.query(Order).count() == 0


def test_email_failure_does_not_affect_order(db, orchestrator, gateway, sign, ready_cart, mailer):
    mailer.fail = True
    started = _begin(orchestrator, db)
    result = orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))
    assert result["state"] == "Completed"
    assert db.query(Order).count() == 1


def test_mailer_exception_is_swallowed(db, orchestrator, gateway, sign, ready_cart, mailer):
    def explode(message):
        raise ConnectionError("smtp down")

    mailer.send = explode
    started = _begin(orchestrator, db)
    result = orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))
    assert result["state"] == "Completed"


def test_transient_write_failure_is_retried(db, make_orchestrator, notifier, gateway, sign, ready_cart):
    orchestrator = make_orchestrator(FlakyCommitter(1, notifier=notifier, max_attempts=3))
    started = _begin(orchestrator, db)
    result = orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))

    assert result["state"] == "Completed"
    assert db.query(Order).count() == 1
    assert db.query(OrderItem).count() == 1
    assert cart_service.get_count(db, SESSION) == 0


def test_exhausted_writes_keep_cart_and_queue_reconciliation(db, make_orchestrator, notifier, gateway, sign, ready_cart, mailer):
    orchestrator = make_orchestrator(FlakyCommitter(3, notifier=notifier, max_attempts=3))
    started = _begin(orchestrator, db)
    ref = started["merchant_reference"]

    with pytest.raises(PersistenceError):
        orchestrator.complete(db, SESSION, ref, _paid_tokens(gateway, sign, started))

    assert db.query(Order).count() == 0
    assert db.query(OrderItem).count() == 0
    assert cart_service.get_count(db, SESSION) == 2
    assert mailer.sent == []
    attempt = _attempt(db, ref)
    assert (attempt.state, attempt.failure_reason) == ("Failed", "PersistenceFailure")
    rec = db.query(OrderReconciliation).one()
    assert rec.status == "pending"
    assert rec.gateway_payment_id == "pay_000001"

    assert orchestrator.recover_pending(db) == {"resolved": 1, "failed": 0}
    db.expire_all()
    order = db.query(Order).one()
    assert order.merchant_reference == ref
    assert _attempt(db, ref).state == "Completed"
    assert db.query(OrderReconciliation).one().order_number == order.order_number
    assert cart_service.get_count(db, SESSION) == 0
    assert len(mailer.sent) == 1

    assert orchestrator.recover_pending(db) == {"resolved": 0, "failed": 0}
    assert db.query(Order).count() == 1


def test_reconciliation_gives_up_after_max_attempts(db, make_orchestrator, notifier, gateway, sign, ready_cart):
    orchestrator = make_orchestrator(FlakyCommitter(100, notifier=notifier, max_attempts=2))
    started = _begin(orchestrator, db)
    with pytest.raises(PersistenceError):
        orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))

    assert orchestrator.recover_pending(db) == {"resolved": 0, "failed": 1}
    assert orchestrator.recover_pending(db) == {"resolved": 0, "failed": 1}
    db.expire_all()
    assert db.query(OrderReconciliation).one().status == ReconciliationStatus.ABANDONED.value
    assert orchestrator.recover_pending(db) == {"resolved": 0, "failed": 0}


def test_cart_edited_during_payment_is_kept(db, orchestrator, gateway, sign, ready_cart, make_product, fill_cart):
    started = _begin(orchestrator, db)
    fill_cart((make_product("Dal Makhani", "110.00"), 1))

    orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))

    order = db.query(Order).one()
    assert [i.product_name for i in order.items] == ["Butter Chicken Gravy"]
    assert order.total_amount == Decimal("290.00")
    assert cart_service.get_count(db, SESSION) == 3


# ==========================================
# Cancel / timeout
# ==========================================

def test_cancel_keeps_cart(db, orchestrator, ready_cart):
    started = _begin(orchestrator, db)
    result = orchestrator.cancel(db, SESSION, started["merchant_reference"])
    assert (result["state"], result["failure_reason"]) == ("Failed", "UserCancelled")
    assert cart_service.get_count(db, SESSION) == 2

    again = orchestrator.cancel(db, SESSION, started["merchant_reference"])
    assert again["failure_reason"] == "UserCancelled"


def test_completed_checkout_cannot_be_cancelled(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))
    with pytest.raises(InvalidTransitionError):
        orchestrator.cancel(db, SESSION, started["merchant_reference"])


def test_stale_attempts_time_out(db, orchestrator, ready_cart, make_product):
    started = _begin(orchestrator, db)
    attempt = _attempt(db, started["merchant_reference"])
    attempt.updated_at = now_utc() - timedelta(minutes=31)
    db.commit()

    other_session = "session-cccccccccccccccccccccccc"
    cart_service.add_item(db, other_session, make_product("Shahi Paneer", "150.00").id, 1)
    db.commit()
    fresh = _begin(orchestrator, db, session_id=other_session)

    assert orchestrator.expire_stale(db) == 1
    stale = _attempt(db, started["merchant_reference"])
    assert (stale.state, stale.failure_reason) == ("Failed", "Timeout")
    assert stale.active_session_id is None
    assert _attempt(db, fresh["merchant_reference"]).state == "AwaitingUserPayment"


def test_late_payment_after_timeout_is_recorded(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    orchestrator.expire_stale(db, now=now_utc() + timedelta(hours=1))
    assert _attempt(db, started["merchant_reference"]).failure_reason == "Timeout"

    result = orchestrator.complete(db, SESSION, started["merchant_reference"], _paid_tokens(gateway, sign, started))
    assert result["state"] == "Completed"
    assert db.query(Order).count() == 1


def _age(db, ref, minutes=31):
    attempt = _attempt(db, ref)
    attempt.updated_at = now_utc() - timedelta(minutes=minutes)
    db.commit()


def test_stuck_verification_releases_session(db, orchestrator, gateway, sign, ready_cart):
    started = _begin(orchestrator, db)
    ref = started["merchant_reference"]
    attempt = _attempt(db, ref)
    attempt.state = "VerifyingPayment"
    db.commit()

    with pytest.raises(CheckoutInProgressError):
        _begin(orchestrator, db)

    _age(db, ref, minutes=24 * 60)
    assert orchestrator.expire_stale(db) == 1
    attempt = _attempt(db, ref)
    assert (attempt.state, attempt.failure_reason) == ("Failed", "VerificationUnconfirmed")
    assert attempt.active_session_id is None

    # A payment that went through is still accepted
    result = orchestrator.complete(db, SESSION, ref, _paid_tokens(gateway, sign, started))
    assert result["state"] == "Completed"


def test_stuck_order_write_is_reconciled(db, make_orchestrator, committer, gateway, sign, ready_cart, mailer):
    class DyingCommitter(OrderCommitter):
        def commit(self, db, **kwargs):
            raise RuntimeError("worker killed")

    dying = make_orchestrator(DyingCommitter())
    started = _begin(dying, db)
    ref = started["merchant_reference"]
    with pytest.raises(RuntimeError):
        dying.complete(db, SESSION, ref, _paid_tokens(gateway, sign, started))
    db.rollback()

    attempt = _attempt(db, ref)
    assert attempt.state == "PersistingOrder"
    assert attempt.gateway_signature == sign(started["checkout"]["gateway_order_id"], "pay_000001")
    with pytest.raises(CheckoutInProgressError):
        _begin(dying, db)

    _age(db, ref)
    orchestrator = make_orchestrator(committer)
    assert orchestrator.expire_stale(db) == 1
    attempt = _attempt(db, ref)
    assert (attempt.state, attempt.failure_reason) == ("Failed", "PersistenceFailure")
    assert attempt.active_session_id is None
    rec = db.query(OrderReconciliation).one()
    assert (rec.status, rec.gateway_payment_id) == ("pending", "pay_000001")
    assert db.query(Order).count() == 0

    assert orchestrator.recover_pending(db) == {"resolved": 1, "failed": 0}
    db.expire_all()
    order = db.query(Order).one()
    assert order.gateway_signature == attempt.gateway_signature
    assert _attempt(db, ref).order_number == order.order_number
    assert cart_service.get_count(db, SESSION) == 0
    assert len(mailer.sent) == 1


def test_recent_in_flight_attempts_are_left_alone(db, orchestrator, ready_cart):
    started = _begin(orchestrator, db)
    attempt = _attempt(db, started["merchant_reference"])
    attempt.state = "PersistingOrder"
    db.commit()

    assert orchestrator.expire_stale(db) == 0
    assert db.query(OrderReconciliation).count() == 0
