"""
Checkout Module - State Machine
=================================
States, failure reasons and the legal transitions between them.

    Idle -> AwaitingGatewayOrder -> AwaitingUserPayment -> VerifyingPayment
         -> PersistingOrder -> Completed
    any non-terminal state -> Failed(reason)

Two moves leave Failed: a late payment on a timed-out, abandoned or
cancelled attempt is still verified (the customer may have been charged),
as is a retry after a verification the gateway never answered. A
reconciled persistence failure is completed.
"""

import enum
from typing import Optional

from common.exceptions import InvalidTransitionError


class CheckoutState(str, enum.Enum):
    IDLE = "Idle"
    AWAITING_GATEWAY_ORDER = "AwaitingGatewayOrder"
    AWAITING_USER_PAYMENT = "AwaitingUserPayment"
    VERIFYING_PAYMENT = "VerifyingPayment"
    PERSISTING_ORDER = "PersistingOrder"
    COMPLETED = "Completed"
    FAILED = "Failed"


class FailureReason(str, enum.Enum):
    VALIDATION_ERROR = "ValidationError"
    GATEWAY_UNAVAILABLE = "GatewayUnavailable"
    USER_CANCELLED = "UserCancelled"
    VERIFICATION_FAILED = "VerificationFailed"
    VERIFICATION_UNCONFIRMED = "VerificationUnconfirmed"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    TIMEOUT = "Timeout"
    ABANDONED = "Abandoned"


S = CheckoutState

TRANSITIONS = {
    S.IDLE: {S.AWAITING_GATEWAY_ORDER, S.FAILED},
    S.AWAITING_GATEWAY_ORDER: {S.AWAITING_USER_PAYMENT, S.FAILED},
    S.AWAITING_USER_PAYMENT: {S.VERIFYING_PAYMENT, S.FAILED},
    S.VERIFYING_PAYMENT: {S.PERSISTING_ORDER, S.FAILED},
    S.PERSISTING_ORDER: {S.COMPLETED, S.FAILED},
    S.COMPLETED: set(),
    S.FAILED: {S.VERIFYING_PAYMENT, S.COMPLETED},
}

# States during which the session may not start another checkout
IN_FLIGHT = frozenset({S.AWAITING_GATEWAY_ORDER, S.VERIFYING_PAYMENT, S.PERSISTING_ORDER})
TERMINAL = frozenset({S.COMPLETED, S.FAILED})

# Failed attempts that still accept a payment completion
LATE_PAYMENT_REASONS = frozenset({
    FailureReason.TIMEOUT.value, FailureReason.ABANDONED.value, FailureReason.USER_CANCELLED.value,
    FailureReason.VERIFICATION_UNCONFIRMED.value,
})


def can_transition(current: str, target: str, reason: Optional[str] = None) -> bool:
    current, target = CheckoutState(current), CheckoutState(target)
    if target not in TRANSITIONS[current]:
        return False
    if current == S.FAILED:
        if target == S.VERIFYING_PAYMENT:
            return reason in LATE_PAYMENT_REASONS
        if target == S.COMPLETED:
            return reason == FailureReason.PERSISTENCE_FAILURE
    return True


def transition(attempt, target: CheckoutState, reason: Optional[FailureReason] = None):
    """
    Move an attempt to target, enforcing the transition table.
    Failed requires a reason; any other target clears it.
    """
    if not can_transition(attempt.state, target, attempt.failure_reason):
        raise InvalidTransitionError(f"Cannot move checkout from {attempt.state} to {target.value}.")

    if target == S.FAILED:
        if reason is None:
            raise InvalidTransitionError("A failed checkout needs a reason.")
        attempt.failure_reason = reason.value
    else:
        attempt.failure_reason = None

    attempt.state = target.value
    if target in TERMINAL:
        attempt.active_session_id = None
    elif target == S.AWAITING_GATEWAY_ORDER:
        attempt.active_session_id = attempt.session_id
    return attempt
