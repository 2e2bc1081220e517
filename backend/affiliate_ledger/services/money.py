from __future__ import annotations

import re


BP_DENOMINATOR = 10_000

_RE_CURRENCY = re.compile(r"^[A-Z]{3}$")


def apply_rate_bp(*, amount_cents: int, rate_bp: int) -> int:
    """
    Integer-only percentage of an amount, rounded half up.

    rate_bp: basis points (e.g. 2000 = 20%).
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be >= 0")
    if rate_bp < 0:
        raise ValueError("rate_bp must be >= 0")
    return (amount_cents * rate_bp + BP_DENOMINATOR // 2) // BP_DENOMINATOR


def normalize_currency(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not _RE_CURRENCY.match(normalized):
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized


def format_cents(cents: int, currency: str) -> str:
    sign = "-" if cents < 0 else ""
    cents_abs = abs(cents)
    units = cents_abs // 100
    rest = cents_abs % 100
    return f"{sign}{units}.{rest:02d} {currency}"
