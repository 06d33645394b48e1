"""
Razorpay Gateway
=================
REST/JSON with HTTP Basic auth (key_id:key_secret).
Orders API creates the gateway order the checkout widget pays against;
Payments API is queried independently during verification.
"""

import httpx
import logging
from typing import Optional

from config.settings import (
    RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, RAZORPAY_API_URL, RAZORPAY_TIMEOUT_SECONDS,
)
from modules.payment.gateways import (
    BaseGateway, GatewayOrderRequest, GatewayOrderResult,
    GatewayPaymentStatus, register_gateway,
)

logger = logging.getLogger("mimasa.gateway.razorpay")


class RazorpayGateway(BaseGateway):
    name = "razorpay"
    label = "Razorpay"

    def __init__(
        self,
        key_id: str = RAZORPAY_KEY_ID,
        key_secret: str = RAZORPAY_KEY_SECRET,
        api_url: str = RAZORPAY_API_URL,
        timeout: float = RAZORPAY_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.api_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        return self._client

    def create_order(self, req: GatewayOrderRequest) -> GatewayOrderResult:
        if not self.configured:
            logger.error("Razorpay credentials missing; cannot create order")
            return GatewayOrderResult(success=False, error_message="Payment gateway is not configured.")

        try:
            resp = self._http().post("/orders", json={
                "amount": req.amount_minor,
                "currency": req.currency,
                "receipt": req.receipt,
                "notes": req.notes,
                "payment_capture": 1,
            })
            data = resp.json()
            logger.info(f"Razorpay create [{req.receipt}]: HTTP {resp.status_code} id={data.get('id')}")

            if resp.status_code == 200 and data.get("id"):
                return GatewayOrderResult(
                    success=True,
                    gateway_order_id=data["id"],
                    amount_minor=data.get("amount", req.amount_minor),
                    currency=data.get("currency", req.currency),
                )
            error = (data.get("error") or {}).get("description") or f"HTTP {resp.status_code}"
            return GatewayOrderResult(success=False, error_message=f"Gateway rejected order: {error}")

        except httpx.TimeoutException:
            logger.warning(f"Razorpay create [{req.receipt}] timed out")
            return GatewayOrderResult(success=False, error_message="Payment gateway did not respond.")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Razorpay create failed [{req.receipt}]: {e}")
            return GatewayOrderResult(success=False, error_message=f"Could not reach payment gateway: {e}")

    def fetch_payment(self, payment_id: str) -> GatewayPaymentStatus:
        if not self.configured:
            return GatewayPaymentStatus(success=False, error_message="Payment gateway is not configured.")

        try:
            resp = self._http().get(f"/payments/{payment_id}")
            data = resp.json()
            logger.info(f"Razorpay payment [{payment_id}]: HTTP {resp.status_code} status={data.get('status')}")

            if resp.status_code == 200 and data.get("id") == payment_id:
                return GatewayPaymentStatus(
                    success=True,
                    status=data.get("status"),
                    gateway_order_id=data.get("order_id"),
                    amount_minor=data.get("amount"),
                )
            error = (data.get("error") or {}).get("description") or f"HTTP {resp.status_code}"
            return GatewayPaymentStatus(success=False, error_message=error)

        except httpx.TimeoutException:
            logger.warning(f"Razorpay payment [{payment_id}] lookup timed out")
            return GatewayPaymentStatus(success=False, error_message="Payment gateway did not respond.")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Razorpay payment lookup failed [{payment_id}]: {e}")
            return GatewayPaymentStatus(success=False, error_message=str(e))


def checkout_widget_options(
    gateway: BaseGateway,
    gateway_order_id: str,
    amount_minor: int,
    currency: str,
    store_name: str,
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    merchant_reference: str,
) -> dict:
    """Parameters for the client-side checkout widget. Carries the public key id only."""
    return {
        "key": gateway.key_id,
        "gateway_order_id": gateway_order_id,
        "amount": amount_minor,
        "currency": currency,
        "name": store_name,
        "prefill": {
            "name": customer_name,
            "email": customer_email,
            "contact": customer_phone,
        },
        "notes": {"merchant_reference": merchant_reference},
    }


register_gateway(RazorpayGateway())
