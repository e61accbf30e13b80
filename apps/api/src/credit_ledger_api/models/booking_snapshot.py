"""Persisted scheduling-provider booking snapshots."""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, func

from credit_ledger_api.db.base import Base
from credit_ledger_api.models.ledger import _utcnow


class BookingSnapshotRecord(Base):
    """Last observed state of a scheduling-provider booking."""

    __tablename__ = "booking_snapshots"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    customer_identity = Column(String(190), nullable=False, index=True)
    external_booking_id = Column(String(190), nullable=False, unique=True)
    status = Column(String(50), nullable=False, server_default="created", index=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
