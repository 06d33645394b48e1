"""
Pricing Module - Calculator
=============================
Cart totals: subtotal, shipping charge, total.
Pure functions over a cart snapshot plus a config snapshot.
"""

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from common.helpers import money


@dataclass(frozen=True)
class ShippingConfig:
    """Config snapshot read from cart_config at call time."""
    shipping_fee: Decimal
    free_shipping_threshold: Decimal


@dataclass(frozen=True)
class PricedLine:
    """One cart line as seen by pricing. unit_price is None when the product is gone."""
    product_id: int
    quantity: int
    unit_price: Optional[Decimal]
    name: str = ""

    @property
    def resolved(self) -> bool:
        return self.unit_price is not None

    @property
    def line_total(self) -> Decimal:
        if self.unit_price is None:
            return Decimal("0.00")
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    shipping_charge: Decimal
    total: Decimal
    unresolved_items: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "shipping_charge": str(self.shipping_charge),
            "total": str(self.total),
            "unresolved_items": list(self.unresolved_items),
        }


def compute_totals(lines: Iterable[PricedLine], config: ShippingConfig) -> CartTotals:
    """
    Compute cart totals.

    Lines whose product cannot be resolved contribute zero and are reported
    in unresolved_items. Shipping is free once subtotal reaches the
    threshold; an empty cart has no shipping.
    """
    lines = list(lines)
    subtotal = money(sum((line.line_total for line in lines), Decimal("0")))
    unresolved = [line.product_id for line in lines if not line.resolved]

    resolved_count = sum(1 for line in lines if line.resolved)
    if resolved_count == 0 or subtotal >= config.free_shipping_threshold:
        shipping = Decimal("0.00")
    else:
        shipping = money(config.shipping_fee)

    return CartTotals(
        subtotal=subtotal,
        shipping_charge=shipping,
        total=money(subtotal + shipping),
        unresolved_items=unresolved,
    )


def lines_from_cart_items(items) -> List[PricedLine]:
    """Build pricing lines from CartItem rows (product relationship loaded)."""
    lines = []
    for item in items:
        product = item.product
        lines.append(PricedLine(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=Decimal(str(product.price)) if product is not None else None,
            name=product.name if product is not None else "",
        ))
    return lines


def cart_fingerprint(lines: Iterable[PricedLine]) -> str:
    """Stable digest of (product, quantity, unit price) for a cart snapshot."""
    parts = sorted(
        f"{line.product_id}:{line.quantity}:{money(line.unit_price) if line.resolved else '-'}"
        for line in lines
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
