"""Append-only credit ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)

from credit_ledger_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerSourceEnum(str, Enum):
    """Origin systems that write to the ledger."""

    STRIPE = "stripe"
    MANUAL = "manual"


class LedgerEntry(Base):
    """Signed credit delta for one customer. Rows are never updated or deleted."""

    __tablename__ = "credit_ledger_entries"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    customer_identity = Column(String(190), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    source = Column(String(50), nullable=False, index=True)
    external_id = Column(String(190), nullable=True, index=True)
    note = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )

    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_credit_ledger_delta_nonzero"),
        Index(
            "uq_credit_ledger_stripe_external",
            "source",
            "external_id",
            unique=True,
            postgresql_where=text("source = 'stripe'"),
            sqlite_where=text("source = 'stripe'"),
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return (
            f"LedgerEntry(id={self.id!r}, customer_identity={self.customer_identity!r}, "
            f"delta={self.delta!r}, source={self.source!r}, external_id={self.external_id!r})"
        )
