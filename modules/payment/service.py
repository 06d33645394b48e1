"""
Payment Service
=================
Wires the active gateway (ACTIVE_GATEWAY, Razorpay by default) and the
verification service built on it.
"""

import logging

from config.settings import ACTIVE_GATEWAY
from modules.payment.gateways import BaseGateway, get_gateway, get_all_gateway_names
from modules.payment.verification import PaymentVerificationService

# Import gateway modules to trigger register_gateway() calls
import modules.payment.gateways.razorpay  # noqa: F401

logger = logging.getLogger("mimasa.payment")


def get_active_gateway() -> BaseGateway:
    gateway = get_gateway(ACTIVE_GATEWAY)
    if gateway is None:
        logger.error(f"Unknown ACTIVE_GATEWAY '{ACTIVE_GATEWAY}' (available: {get_all_gateway_names()}); using razorpay")
        gateway = get_gateway("razorpay")
    return gateway


# Shared instances
payment_gateway = get_active_gateway()
payment_verification_service = PaymentVerificationService(payment_gateway)
