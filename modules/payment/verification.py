"""
Payment Module - Verification
===============================
Server-side check of a payment-completion claim from the checkout widget.

Two independent checks must both pass:
  1. HMAC-SHA256("{order_id}|{payment_id}", key_secret) equals the signature
     (constant-time compare).
  2. The gateway's own Payments API reports the payment as captured (or
     authorized, pending auto-capture) against the same gateway order.

Any error along the way yields verified=False.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from common.security import hmac_sha256_hex, constant_time_equals
from config.settings import RAZORPAY_KEY_SECRET
from modules.payment.gateways import BaseGateway

logger = logging.getLogger("mimasa.payment")

SUCCESS_STATUSES = frozenset({"captured", "authorized"})

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")
_SIGNATURE_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass
class VerificationResult:
    verified: bool
    reason: Optional[str] = None
    payment_status: Optional[str] = None

    def as_dict(self) -> dict:
        return {"verified": self.verified, "payment_status": self.payment_status, "reason": self.reason}


class PaymentVerificationService:

    def __init__(self, gateway: BaseGateway, secret: str = RAZORPAY_KEY_SECRET):
        self.gateway = gateway
        self._secret = secret

    def expected_signature(self, order_id: str, payment_id: str) -> str:
        return hmac_sha256_hex(self._secret, f"{order_id}|{payment_id}")

    def verify(self, order_id: str, payment_id: str, signature: str) -> VerificationResult:
        try:
            return self._verify(order_id, payment_id, signature)
        except Exception:
            logger.exception(f"Verification error order={order_id!r} payment={payment_id!r}")
            return VerificationResult(verified=False, reason="verification_error")

    def _verify(self, order_id: str, payment_id: str, signature: str) -> VerificationResult:
        if not self._secret:
            logger.error("Payment verification attempted without a merchant secret")
            return VerificationResult(verified=False, reason="secret_missing")

        if not all(isinstance(v, str) for v in (order_id, payment_id, signature)):
            return VerificationResult(verified=False, reason="malformed_input")
        if not (_TOKEN_RE.match(order_id) and _TOKEN_RE.match(payment_id) and _SIGNATURE_RE.match(signature)):
            return VerificationResult(verified=False, reason="malformed_input")

        expected = self.expected_signature(order_id, payment_id)
        if not constant_time_equals(expected, signature):
            logger.warning(f"Signature mismatch order={order_id} payment={payment_id}")
            return VerificationResult(verified=False, reason="signature_mismatch")

        status = self.gateway.fetch_payment(payment_id)
        if not status.success:
            logger.warning(f"Payment lookup failed order={order_id} payment={payment_id}: {status.error_message}")
            return VerificationResult(verified=False, reason="gateway_unreachable")

        if status.gateway_order_id != order_id:
            logger.warning(
                f"Payment {payment_id} belongs to order {status.gateway_order_id}, claimed for {order_id}"
            )
            return VerificationResult(verified=False, reason="order_mismatch", payment_status=status.status)

        if status.status not in SUCCESS_STATUSES:
            logger.warning(f"Payment {payment_id} not captured (status={status.status})")
            return VerificationResult(verified=False, reason="payment_not_captured", payment_status=status.status)

        return VerificationResult(verified=True, payment_status=status.status)
