from .adjustments import AdjustmentResult, ManualAdjustmentService
from .store import AppendResult, BookingSnapshotRepository, LedgerStore

__all__ = [
    "AdjustmentResult",
    "AppendResult",
    "BookingSnapshotRepository",
    "LedgerStore",
    "ManualAdjustmentService",
]
