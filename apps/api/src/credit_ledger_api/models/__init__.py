"""SQLAlchemy models package."""

from .booking_snapshot import BookingSnapshotRecord  # noqa: F401
from .ledger import LedgerEntry, LedgerSourceEnum  # noqa: F401

__all__ = ["BookingSnapshotRecord", "LedgerEntry", "LedgerSourceEnum"]
