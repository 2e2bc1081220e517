from __future__ import annotations

from dataclasses import dataclass

from affiliate_ledger.core.enums import AffiliateKind, CommissionType
from affiliate_ledger.core.errors import CurrencyMismatchError
from affiliate_ledger.services.money import BP_DENOMINATOR, apply_rate_bp


@dataclass(frozen=True)
class PercentPolicy:
    rate_bp: int

    def __post_init__(self) -> None:
        if not 0 <= self.rate_bp <= BP_DENOMINATOR:
            raise ValueError("rate_bp must be between 0 and 10000")


@dataclass(frozen=True)
class FixedPolicy:
    amount_cents: int

    def __post_init__(self) -> None:
        if self.amount_cents < 0:
            raise ValueError("amount_cents must be >= 0")


CommissionPolicy = PercentPolicy | FixedPolicy


@dataclass(frozen=True)
class CommissionSplit:
    gross_cents: int
    commission_cents: int
    net_cents: int


def policy_from(commission_type: CommissionType, value: int) -> CommissionPolicy:
    match commission_type:
        case CommissionType.PERCENT:
            return PercentPolicy(rate_bp=value)
        case CommissionType.FIXED:
            return FixedPolicy(amount_cents=value)
    raise ValueError(f"Unknown commission type: {commission_type}")


def policy_fields(policy: CommissionPolicy) -> tuple[CommissionType, int]:
    match policy:
        case PercentPolicy(rate_bp=rate_bp):
            return CommissionType.PERCENT, rate_bp
        case FixedPolicy(amount_cents=amount_cents):
            return CommissionType.FIXED, amount_cents
    raise ValueError(f"Unknown commission policy: {policy!r}")


def split(*, gross_cents: int, policy: CommissionPolicy) -> CommissionSplit:
    """
    Split a gross amount into (commission, net) with `commission + net == gross`.

    Percent commissions are rounded half up to the minor unit; fixed commissions
    never exceed the gross amount, so net is never negative.
    """
    if gross_cents < 0:
        raise ValueError("gross_cents must be >= 0")

    match policy:
        case PercentPolicy(rate_bp=rate_bp):
            commission = apply_rate_bp(amount_cents=gross_cents, rate_bp=rate_bp)
        case FixedPolicy(amount_cents=amount_cents):
            commission = amount_cents
        case _:
            raise ValueError(f"Unknown commission policy: {policy!r}")

    commission = max(0, min(commission, gross_cents))
    return CommissionSplit(gross_cents=gross_cents, commission_cents=commission, net_cents=gross_cents - commission)


def ensure_currency(*, invoice_currency: str, assignment_currency: str | None) -> None:
    if assignment_currency is not None and assignment_currency != invoice_currency:
        raise CurrencyMismatchError(
            f"Invoice currency {invoice_currency} does not match assignment currency {assignment_currency}"
        )


def affiliate_share_cents(*, kind: AffiliateKind, parts: CommissionSplit) -> int:
    # Partners keep what remains after the platform's commission; resellers earn the commission itself.
    if kind == AffiliateKind.PARTNER:
        return parts.net_cents
    return parts.commission_cents


def platform_share_cents(*, kind: AffiliateKind, parts: CommissionSplit) -> int:
    return parts.gross_cents - affiliate_share_cents(kind=kind, parts=parts)
