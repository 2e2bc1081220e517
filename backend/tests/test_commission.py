from __future__ import annotations

import pytest

from affiliate_ledger.core.enums import AffiliateKind, CommissionType
from affiliate_ledger.core.errors import CurrencyMismatchError
from affiliate_ledger.services.commission import (
    FixedPolicy,
    PercentPolicy,
    affiliate_share_cents,
    ensure_currency,
    platform_share_cents,
    policy_fields,
    policy_from,
    split,
)


def test_percent_split_exact() -> None:
    parts = split(gross_cents=10_000, policy=PercentPolicy(rate_bp=2000))
    assert parts.commission_cents == 2_000
    assert parts.net_cents == 8_000


@pytest.mark.parametrize("gross", [0, 1, 2, 3, 7, 99, 101, 333, 999, 10_001, 123_457])
@pytest.mark.parametrize("rate_bp", [0, 1, 1250, 2000, 3333, 9999, 10_000])
def test_percent_split_always_sums_to_gross(gross: int, rate_bp: int) -> None:
    parts = split(gross_cents=gross, policy=PercentPolicy(rate_bp=rate_bp))
    assert parts.commission_cents + parts.net_cents == gross
    assert 0 <= parts.commission_cents <= gross
    assert parts.net_cents >= 0


def test_percent_split_rounds_half_up() -> None:
    # 15% of 10 cents = 1.5 -> 2
    parts = split(gross_cents=10, policy=PercentPolicy(rate_bp=1500))
    assert parts.commission_cents == 2
    assert parts.net_cents == 8


def test_fixed_split_below_gross() -> None:
    parts = split(gross_cents=5_000, policy=FixedPolicy(amount_cents=300))
    assert parts.commission_cents == 300
    assert parts.net_cents == 4_700


def test_fixed_split_is_capped_at_gross() -> None:
    parts = split(gross_cents=250, policy=FixedPolicy(amount_cents=1_000))
    assert parts.commission_cents == 250
    assert parts.net_cents == 0


def test_split_rejects_negative_gross() -> None:
    with pytest.raises(ValueError):
        split(gross_cents=-1, policy=PercentPolicy(rate_bp=100))


def test_policy_validation() -> None:
    with pytest.raises(ValueError):
        PercentPolicy(rate_bp=10_001)
    with pytest.raises(ValueError):
        PercentPolicy(rate_bp=-1)
    with pytest.raises(ValueError):
        FixedPolicy(amount_cents=-5)


def test_policy_from_and_fields_are_inverse() -> None:
    assert policy_from(CommissionType.PERCENT, 2500) == PercentPolicy(rate_bp=2500)
    assert policy_from(CommissionType.FIXED, 99) == FixedPolicy(amount_cents=99)
    assert policy_fields(PercentPolicy(rate_bp=2500)) == (CommissionType.PERCENT, 2500)
    assert policy_fields(FixedPolicy(amount_cents=99)) == (CommissionType.FIXED, 99)


def test_ensure_currency() -> None:
    ensure_currency(invoice_currency="USD", assignment_currency=None)
    ensure_currency(invoice_currency="USD", assignment_currency="USD")
    with pytest.raises(CurrencyMismatchError):
        ensure_currency(invoice_currency="EUR", assignment_currency="USD")


def test_partner_earns_net_and_reseller_earns_commission() -> None:
    parts = split(gross_cents=1_000, policy=PercentPolicy(rate_bp=3000))

    assert affiliate_share_cents(kind=AffiliateKind.PARTNER, parts=parts) == 700
    assert platform_share_cents(kind=AffiliateKind.PARTNER, parts=parts) == 300

    assert affiliate_share_cents(kind=AffiliateKind.RESELLER, parts=parts) == 300
    assert platform_share_cents(kind=AffiliateKind.RESELLER, parts=parts) == 700
