"""
Payment Module - Schemas
==========================
Tokens the checkout widget hands back on success.
Razorpay's own field names are accepted as aliases.
"""

from pydantic import BaseModel, ConfigDict, Field


class WidgetTokens(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gateway_order_id: str = Field("", alias="razorpay_order_id", max_length=64)
    gateway_payment_id: str = Field("", alias="razorpay_payment_id", max_length=64)
    gateway_signature: str = Field("", alias="razorpay_signature", max_length=128)
