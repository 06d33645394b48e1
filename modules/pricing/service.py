"""
Pricing Module - Config Service
==================================
CartConfigProvider: reads shipping fee / free-shipping threshold from
cart_config with a short explicit TTL, falling back to defaults so totals
never fail on a missing row.

CartConfigService: admin reads and validated writes.
"""

import logging
import time
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from common.exceptions import ValidationError
from common.helpers import parse_decimal
from config.settings import (
    DEFAULT_SHIPPING_FEE, DEFAULT_FREE_SHIPPING_THRESHOLD, CART_CONFIG_TTL_SECONDS,
)
from modules.pricing.calculator import ShippingConfig
from modules.pricing.models import CartConfig, SHIPPING_FEE_KEY, FREE_SHIPPING_KEY

logger = logging.getLogger("mimasa.pricing")


class CartConfigProvider:

    def __init__(
        self,
        ttl_seconds: int = CART_CONFIG_TTL_SECONDS,
        default_fee: Decimal = DEFAULT_SHIPPING_FEE,
        default_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.default_fee = default_fee
        self.default_threshold = default_threshold
        self._clock = clock
        self._cached: Optional[ShippingConfig] = None
        self._cached_at = 0.0

    def get(self, db: Session) -> ShippingConfig:
        """Current config snapshot (cached for at most ttl_seconds)."""
        now = self._clock()
        if self._cached is not None and self.ttl_seconds > 0 and now - self._cached_at < self.ttl_seconds:
            return self._cached

        rows = db.query(CartConfig).filter(
            CartConfig.name.in_([SHIPPING_FEE_KEY, FREE_SHIPPING_KEY])
        ).all()
        values = {r.name: r.value for r in rows}

        snapshot = ShippingConfig(
            shipping_fee=self._read(values, SHIPPING_FEE_KEY, self.default_fee),
            free_shipping_threshold=self._read(values, FREE_SHIPPING_KEY, self.default_threshold),
        )
        self._cached = snapshot
        self._cached_at = now
        return snapshot

    def invalidate(self):
        self._cached = None

    def _read(self, values: dict, key: str, default: Decimal) -> Decimal:
        raw = values.get(key)
        if raw is None:
            return default
        parsed = parse_decimal(raw)
        if parsed is None or parsed < 0:
            logger.warning(f"cart_config '{key}' has invalid value {raw!r}; using default {default}")
            return default
        return parsed


class CartConfigService:

    def __init__(self, provider: CartConfigProvider):
        self.provider = provider

    def get_all(self, db: Session) -> List[CartConfig]:
        return db.query(CartConfig).order_by(CartConfig.name).all()

    def set_value(self, db: Session, name: str, value: str) -> CartConfig:
        """Upsert a config row. Values must parse as non-negative numbers."""
        name = (name or "").strip()
        if not name:
            raise ValidationError(fields={"name": "Config name is required."})

        parsed = parse_decimal(value)
        if parsed is None or parsed < 0:
            raise ValidationError(fields={"value": "Value must be a non-negative number."})

        row = db.query(CartConfig).filter(CartConfig.name == name).first()
        if row:
            row.value = str(parsed)
        else:
            row = CartConfig(name=name, value=str(parsed))
            db.add(row)
        db.flush()
        self.provider.invalidate()
        logger.info(f"cart_config '{name}' set to {parsed}")
        return row


# Shared instances (the provider is injected wherever totals are computed)
cart_config_provider = CartConfigProvider()
cart_config_service = CartConfigService(cart_config_provider)
