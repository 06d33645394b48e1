"""
Checkout Module - Schemas
===========================
Request bodies, customer form validation, and the payment tokens returned
by the checkout widget.
"""

import re
from dataclasses import dataclass, asdict

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel

from common.exceptions import ValidationError

PHONE_RE = re.compile(r"^[0-9]{10}$")
PIN_RE = re.compile(r"^[0-9]{6}$")


class CheckoutRequest(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    pin_code: str = ""


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str
    phone: str
    address: str
    pin_code: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PaymentTokens:
    gateway_order_id: str
    gateway_payment_id: str
    gateway_signature: str


def validate_customer(data: dict) -> CustomerDetails:
    """Validate the checkout form. Raises ValidationError with per-field messages."""
    name = " ".join((data.get("name") or "").split())
    email = (data.get("email") or "").strip()
    phone = re.sub(r"[\s\-]", "", data.get("phone") or "")
    address = (data.get("address") or "").strip()
    pin_code = (data.get("pin_code") or "").strip()

    errors = {}
    if not name:
        errors["name"] = "Full name is required."
    elif len(name) > 200:
        errors["name"] = "Name is too long."

    if not email:
        errors["email"] = "Email is required."
    else:
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError:
            errors["email"] = "Enter a valid email address."

    if not PHONE_RE.match(phone):
        errors["phone"] = "Phone number must be 10 digits."

    if not address:
        errors["address"] = "Shipping address is required."

    if not PIN_RE.match(pin_code):
        errors["pin_code"] = "PIN code must be 6 digits."

    if errors:
        raise ValidationError(fields=errors)

    return CustomerDetails(name=name, email=email, phone=phone, address=address, pin_code=pin_code)
