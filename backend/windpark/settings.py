"""Environment driven settings for the settlement engine."""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation

VAT_RATE_ENV = "SETTLEMENT_VAT_RATE_PERCENT"
REVENUE_PHASING_ENV = "SETTLEMENT_REVENUE_PHASING"
DEFAULT_WEA_SHARE_ENV = "SETTLEMENT_DEFAULT_WEA_SHARE"
DEFAULT_POOL_SHARE_ENV = "SETTLEMENT_DEFAULT_POOL_SHARE"

DEFAULT_VAT_RATE = Decimal("19")
DEFAULT_REVENUE_PHASING = "pro_rata_months"
DEFAULT_WEA_SHARE = Decimal("10")
DEFAULT_POOL_SHARE = Decimal("90")


def _read_percentage_env(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number") from exc
    if value < 0 or value > 100:
        raise ValueError(f"{name} must be between 0 and 100")
    return value


def vat_rate_percent() -> Decimal:
    return _read_percentage_env(VAT_RATE_ENV, DEFAULT_VAT_RATE)


def revenue_phasing_name() -> str:
    raw = os.getenv(REVENUE_PHASING_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_REVENUE_PHASING
    return raw.strip().lower()


def default_share_split() -> tuple[Decimal, Decimal]:
    """Return the WEA/pool split used when a park has none configured."""

    wea = _read_percentage_env(DEFAULT_WEA_SHARE_ENV, DEFAULT_WEA_SHARE)
    pool = _read_percentage_env(DEFAULT_POOL_SHARE_ENV, DEFAULT_POOL_SHARE)
    if wea + pool != Decimal("100"):
        raise ValueError(
            f"{DEFAULT_WEA_SHARE_ENV} and {DEFAULT_POOL_SHARE_ENV} must add up to 100"
        )
    return wea, pool
