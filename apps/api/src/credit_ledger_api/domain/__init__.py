"""Pure domain helpers shared by the ledger, resolver and reconciler."""

from .packages import PackageCatalog, PackageClassification, PackageTier
from .records import (
    BookingReconciliation,
    BookingSnapshot,
    InvoiceSummary,
    PurchaseRecord,
    ResolutionOutcome,
    StrategyAttempt,
)

__all__ = [
    "BookingReconciliation",
    "BookingSnapshot",
    "InvoiceSummary",
    "PackageCatalog",
    "PackageClassification",
    "PackageTier",
    "PurchaseRecord",
    "ResolutionOutcome",
    "StrategyAttempt",
]
