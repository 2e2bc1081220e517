from __future__ import annotations

from sqlalchemy import Enum

from affiliate_ledger.core.enums import (
    AffiliateKind,
    AffiliateStatus,
    AssignmentStatus,
    CommissionType,
    InvoiceStatus,
    LedgerEntryType,
    PayoutMethod,
    PayoutStatus,
    RevenueSourceType,
)

affiliate_kind_enum = Enum(AffiliateKind, name="affiliate_kind")
affiliate_status_enum = Enum(AffiliateStatus, name="affiliate_status")
payout_method_enum = Enum(PayoutMethod, name="payout_method")

commission_type_enum = Enum(CommissionType, name="commission_type")
revenue_source_type_enum = Enum(RevenueSourceType, name="revenue_source_type")
assignment_status_enum = Enum(AssignmentStatus, name="assignment_status")

invoice_status_enum = Enum(InvoiceStatus, name="invoice_status")

ledger_entry_type_enum = Enum(LedgerEntryType, name="ledger_entry_type")
payout_status_enum = Enum(PayoutStatus, name="payout_status")
