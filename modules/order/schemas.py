"""
Order Module - Serializers
"""

from modules.order.models import Order, OrderReconciliation


def _iso(value):
    return value.isoformat() if value else None


def order_to_dict(o: Order, with_items: bool = False) -> dict:
    data = {
        "order_number": o.order_number,
        "customer_name": o.customer_name,
        "customer_email": o.customer_email,
        "customer_phone": o.customer_phone,
        "shipping_address": o.shipping_address,
        "pin_code": o.pin_code,
        "subtotal": str(o.subtotal),
        "shipping_charge": str(o.shipping_charge),
        "total_amount": str(o.total_amount),
        "status": o.status,
        "status_label": o.status_label,
        "payment_status": o.payment_status,
        "fulfillment_status": o.fulfillment_status,
        "fulfillment_label": o.fulfillment_label,
        "merchant_reference": o.merchant_reference,
        "gateway_order_id": o.gateway_order_id,
        "gateway_payment_id": o.gateway_payment_id,
        "paid_at": _iso(o.paid_at),
        "created_at": _iso(o.created_at),
    }
    if with_items:
        data["items"] = [
            {
                "product_id": it.product_id,
                "product_name": it.product_name,
                "product_price": str(it.product_price),
                "quantity": it.quantity,
                "subtotal": str(it.subtotal),
            }
            for it in o.items
        ]
    return data


def reconciliation_to_dict(r: OrderReconciliation) -> dict:
    return {
        "merchant_reference": r.merchant_reference,
        "gateway_order_id": r.gateway_order_id,
        "gateway_payment_id": r.gateway_payment_id,
        "status": r.status,
        "attempts": r.attempts,
        "last_error": r.last_error,
        "order_number": r.order_number,
        "created_at": _iso(r.created_at),
    }
