from __future__ import annotations

from enum import StrEnum


class AffiliateKind(StrEnum):
    PARTNER = "PARTNER"
    RESELLER = "RESELLER"


class AffiliateStatus(StrEnum):
    # Partners: PENDING -> APPROVED <-> SUSPENDED, PENDING -> REJECTED.
    # Resellers: ACTIVE <-> SUSPENDED.
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"


class PayoutMethod(StrEnum):
    BANK = "BANK"
    BKASH = "BKASH"
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"


class CommissionType(StrEnum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class RevenueSourceType(StrEnum):
    MARKETPLACE_ITEM = "MARKETPLACE_ITEM"
    TENANT = "TENANT"


class AssignmentStatus(StrEnum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class InvoiceStatus(StrEnum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAID = "PAID"
    VOID = "VOID"


class LedgerEntryType(StrEnum):
    EARNED = "EARNED"
    ADJUSTMENT = "ADJUSTMENT"
    PAYOUT = "PAYOUT"


class PayoutStatus(StrEnum):
    OWED = "OWED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    VOID = "VOID"


class AccrualOutcome(StrEnum):
    ACCRUED = "ACCRUED"
    ALREADY_ACCRUED = "ALREADY_ACCRUED"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    INVOICE_NOT_PAID = "INVOICE_NOT_PAID"
    NO_ASSIGNMENT = "NO_ASSIGNMENT"
    ASSIGNMENT_PAUSED = "ASSIGNMENT_PAUSED"
    AFFILIATE_NOT_ELIGIBLE = "AFFILIATE_NOT_ELIGIBLE"
    ZERO_AMOUNT = "ZERO_AMOUNT"


class Role(StrEnum):
    ADMIN = "ADMIN"
    REVIEWER = "REVIEWER"


EARNING_STATUSES: frozenset[AffiliateStatus] = frozenset({AffiliateStatus.APPROVED, AffiliateStatus.ACTIVE})
OUTSTANDING_PAYOUT_STATUSES: frozenset[PayoutStatus] = frozenset({PayoutStatus.OWED, PayoutStatus.APPROVED})
SETTLEABLE_ENTRY_TYPES: frozenset[LedgerEntryType] = frozenset({LedgerEntryType.EARNED, LedgerEntryType.ADJUSTMENT})
