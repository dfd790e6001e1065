"""
Settings — one object grouping every policy, loadable from the environment.

    settings = Settings.from_env()
    processor, engine = await open_processor(settings)

Environment variables (all optional):

    NITEBITE_DATABASE_URL             sqlite+aiosqlite:///:memory:
    NITEBITE_LOG_LEVEL                INFO
    NITEBITE_LOG_DIR                  unset (console only)
    NITEBITE_PRICE_TOLERANCE          1.00
    NITEBITE_MAX_ITEM_QUANTITY        50
    NITEBITE_IDEMPOTENCY_TTL_SECONDS  600
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from nitebite._types import money
from nitebite.checkout import CheckoutPolicy
from nitebite.pricing import PricingPolicy
from nitebite.ratelimit import Category, RateLimitPolicy, DEFAULT_POLICIES

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
PREFIX = "NITEBITE_"


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    log_dir: str | None = None
    pricing: PricingPolicy = field(default_factory=PricingPolicy)
    checkout: CheckoutPolicy = field(default_factory=CheckoutPolicy)
    rate_limits: Mapping[Category, RateLimitPolicy] = field(
        default_factory=lambda: dict(DEFAULT_POLICIES)
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Read NITEBITE_* variables. Unset ones keep their defaults."""
        env = os.environ if environ is None else environ
        settings = cls(
            database_url=env.get(PREFIX + "DATABASE_URL", DEFAULT_DATABASE_URL),
            log_level=env.get(PREFIX + "LOG_LEVEL", "INFO").upper(),
            log_dir=env.get(PREFIX + "LOG_DIR") or None,
        )

        checkout = settings.checkout
        if (tolerance := env.get(PREFIX + "PRICE_TOLERANCE")) is not None:
            checkout = checkout.with_price_tolerance(money(tolerance))
        if (max_quantity := env.get(PREFIX + "MAX_ITEM_QUANTITY")) is not None:
            checkout = checkout.with_max_item_quantity(int(max_quantity))
        if (ttl := env.get(PREFIX + "IDEMPOTENCY_TTL_SECONDS")) is not None:
            checkout = checkout.with_idempotency(
                checkout.idempotency.with_ttl(seconds=float(ttl))
            )

        return replace(settings, checkout=checkout)

    def with_database_url(self, url: str) -> Settings:
        return replace(self, database_url=url)

    def with_rate_limit(self, category: Category, policy: RateLimitPolicy) -> Settings:
        return replace(self, rate_limits={**self.rate_limits, category: policy})


__all__ = ("DEFAULT_DATABASE_URL", "Settings")
