from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.audit_log import AuditLog
from affiliate_ledger.models.commission_assignment import CommissionAssignment
from affiliate_ledger.models.invoice import Invoice
from affiliate_ledger.models.job_lock import JobLock
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.models.payout import Payout
from affiliate_ledger.models.revenue_source import MarketplaceItem, Tenant

__all__ = [
    "Affiliate",
    "AuditLog",
    "CommissionAssignment",
    "Invoice",
    "JobLock",
    "LedgerEntry",
    "MarketplaceItem",
    "Payout",
    "Tenant",
]
