"""
Payment Gateway Abstraction
=============================
Each gateway implements create_order() and fetch_payment().
Registry pattern for gateway lookup by name.
"""

import logging
from typing import Dict, Optional, List
from dataclasses import dataclass, field

logger = logging.getLogger("mimasa.gateway")


@dataclass
class GatewayOrderRequest:
    """Input for creating a gateway-side order."""
    amount_minor: int       # paise
    currency: str
    receipt: str            # merchant reference
    notes: Dict[str, str] = field(default_factory=dict)


@dataclass
class GatewayOrderResult:
    """Result of create_order()."""
    success: bool
    gateway_order_id: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class GatewayPaymentStatus:
    """Result of fetch_payment(): the gateway's own view of a payment."""
    success: bool
    status: Optional[str] = None            # created | authorized | captured | refunded | failed
    gateway_order_id: Optional[str] = None
    amount_minor: Optional[int] = None
    error_message: Optional[str] = None


class BaseGateway:
    """Abstract gateway interface."""
    name: str = ""
    label: str = ""
    key_id: str = ""

    def create_order(self, req: GatewayOrderRequest) -> GatewayOrderResult:
        raise NotImplementedError

    def fetch_payment(self, payment_id: str) -> GatewayPaymentStatus:
        raise NotImplementedError


# ── Registry ──

_GATEWAYS: Dict[str, BaseGateway] = {}


def register_gateway(gw: BaseGateway):
    _GATEWAYS[gw.name] = gw


def get_gateway(name: str) -> Optional[BaseGateway]:
    return _GATEWAYS.get(name)


def get_all_gateway_names() -> List[str]:
    return list(_GATEWAYS.keys())
