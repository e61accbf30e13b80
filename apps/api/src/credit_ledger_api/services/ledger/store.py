"""Append-only credit ledger persistence."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from loguru import logger
from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger_api.core.errors import LedgerStorageError, LedgerValidationError
from credit_ledger_api.domain.identity import normalize_email
from credit_ledger_api.domain.records import BookingSnapshot
from credit_ledger_api.models.booking_snapshot import BookingSnapshotRecord
from credit_ledger_api.models.ledger import LedgerEntry, LedgerSourceEnum

_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefinedtable")


def _is_missing_table(exc: SQLAlchemyError) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


def ensure_aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on read-back; treat naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _source_value(source: LedgerSourceEnum | str) -> str:
    if isinstance(source, LedgerSourceEnum):
        return source.value
    return str(source).strip().lower()


@dataclass(slots=True)
class AppendResult:
    """``duplicate`` is True when an identical stripe entry already existed."""

    entry: LedgerEntry
    duplicate: bool = False


class LedgerStore:
    """Reads and appends ledger entries within the caller's session.

    The caller owns the transaction: ``append_entry`` flushes, the caller
    commits before acknowledging the write.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append_entry(
        self,
        customer_identity: str,
        delta: int,
        source: LedgerSourceEnum | str,
        external_id: str | None = None,
        note: str | None = None,
    ) -> AppendResult:
        identity = normalize_email(customer_identity)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise LedgerValidationError("Delta must be an integer", code="invalid_delta")
        if delta == 0:
            raise LedgerValidationError("Delta must be non-zero", code="zero_delta")
        source_value = _source_value(source)
        if not source_value:
            raise LedgerValidationError("Missing ledger source", code="missing_source")
        external = (external_id or "").strip() or None
        is_stripe = source_value == LedgerSourceEnum.STRIPE.value
        if is_stripe and external is None:
            raise LedgerValidationError(
                "Stripe ledger entries require an external id",
                code="missing_external_id",
            )

        try:
            if is_stripe:
                existing = await self._find_by_external_id(source_value, external)
                if existing is not None:
                    logger.info(
                        "Duplicate ledger append ignored",
                        source=source_value,
                        external_id=external,
                        entry_id=existing.id,
                    )
                    return AppendResult(entry=existing, duplicate=True)

            entry = LedgerEntry(
                customer_identity=identity,
                delta=delta,
                source=source_value,
                external_id=external,
                note=note,
            )
            self._session.add(entry)
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            if not is_stripe:
                raise LedgerStorageError("Ledger rejected the entry", code="integrity_error")
            winner = await self._find_by_external_id(source_value, external)
            if winner is None:
                raise LedgerStorageError("Ledger rejected the entry", code="integrity_error")
            logger.info(
                "Concurrent duplicate ledger append resolved",
                source=source_value,
                external_id=external,
                entry_id=winner.id,
            )
            return AppendResult(entry=winner, duplicate=True)
        except SQLAlchemyError as exc:
            logger.error("Ledger append failed", source=source_value, error=str(exc))
            raise LedgerStorageError(f"Ledger append failed: {exc}") from exc

        logger.info(
            "Ledger entry appended",
            customer_identity=identity,
            delta=delta,
            source=source_value,
            external_id=external,
            entry_id=entry.id,
        )
        return AppendResult(entry=entry, duplicate=False)

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("Ledger commit failed", error=str(exc))
            raise LedgerStorageError(f"Ledger commit failed: {exc}") from exc

    async def get_balance(self, customer_identity: str) -> int:
        identity = normalize_email(customer_identity)
        stmt = select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(
            LedgerEntry.customer_identity == identity
        )
        result = await self._read(stmt, default=None)
        if result is None:
            return 0
        return int(result.scalar_one() or 0)

    async def list_recent_entries(self, limit: int = 50) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .limit(max(1, limit))
        )
        result = await self._read(stmt, default=None)
        if result is None:
            return []
        return list(result.scalars().all())

    async def list_entries_for(self, customer_identity: str, limit: int = 50) -> list[LedgerEntry]:
        identity = normalize_email(customer_identity)
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.customer_identity == identity)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .limit(max(1, limit))
        )
        result = await self._read(stmt, default=None)
        if result is None:
            return []
        return list(result.scalars().all())

    async def list_balances(self, limit: int = 100) -> "OrderedDict[str, int]":
        balance = func.sum(LedgerEntry.delta).label("balance")
        stmt = (
            select(LedgerEntry.customer_identity, balance)
            .group_by(LedgerEntry.customer_identity)
            .order_by(desc(balance), LedgerEntry.customer_identity)
            .limit(max(1, limit))
        )
        result = await self._read(stmt, default=None)
        balances: OrderedDict[str, int] = OrderedDict()
        if result is None:
            return balances
        for identity, total in result.all():
            balances[identity] = int(total or 0)
        return balances

    async def count_consumption_since(
        self,
        customer_identity: str,
        since: datetime,
        payment_source: LedgerSourceEnum | str = LedgerSourceEnum.STRIPE,
    ) -> int:
        identity = normalize_email(customer_identity)
        stmt = select(func.count(LedgerEntry.id)).where(
            LedgerEntry.customer_identity == identity,
            LedgerEntry.delta < 0,
            LedgerEntry.source != _source_value(payment_source),
            LedgerEntry.created_at >= ensure_aware(since),
        )
        result = await self._read(stmt, default=None)
        if result is None:
            return 0
        return int(result.scalar_one() or 0)

    async def _find_by_external_id(self, source: str, external_id: str | None) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(
            LedgerEntry.source == source,
            LedgerEntry.external_id == external_id,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def _read(self, stmt, *, default):
        try:
            return await self._session.execute(stmt)
        except (OperationalError, ProgrammingError) as exc:
            if _is_missing_table(exc):
                await self._session.rollback()
                logger.warning("Ledger table missing; treating as empty", error=str(exc))
                return default
            logger.error("Ledger read failed", error=str(exc))
            raise LedgerStorageError(f"Ledger read failed: {exc}") from exc
        except SQLAlchemyError as exc:
            logger.error("Ledger read failed", error=str(exc))
            raise LedgerStorageError(f"Ledger read failed: {exc}") from exc


class BookingSnapshotRepository:
    """Persists observed bookings as a secondary consumption source."""

    def __init__(self, session: AsyncSession, *, counted_statuses: Iterable[str]) -> None:
        self._session = session
        self._counted_statuses = tuple(status.lower() for status in counted_statuses)

    async def upsert_many(self, customer_identity: str, bookings: Iterable[BookingSnapshot]) -> int:
        identity = normalize_email(customer_identity)
        written = 0
        try:
            for booking in bookings:
                if booking.booking_id == "unknown":
                    continue
                stmt = select(BookingSnapshotRecord).where(
                    BookingSnapshotRecord.external_booking_id == booking.booking_id
                )
                record = (await self._session.execute(stmt)).scalars().first()
                if record is None:
                    record = BookingSnapshotRecord(
                        customer_identity=identity,
                        external_booking_id=booking.booking_id,
                    )
                    if booking.created_at is not None:
                        record.created_at = booking.created_at
                    self._session.add(record)
                record.status = (booking.status or "created").lower()
                record.start_time = booking.start
                written += 1
            await self._session.flush()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            if _is_missing_table(exc):
                logger.warning("Booking snapshot table missing; skipping persistence", error=str(exc))
                return 0
            logger.error("Booking snapshot upsert failed", error=str(exc))
            raise LedgerStorageError(f"Booking snapshot upsert failed: {exc}") from exc
        return written

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise LedgerStorageError(f"Booking snapshot commit failed: {exc}") from exc

    async def count_since(self, customer_identity: str, since: datetime) -> int:
        identity = normalize_email(customer_identity)
        boundary = ensure_aware(since)
        event_time = func.coalesce(BookingSnapshotRecord.start_time, BookingSnapshotRecord.created_at)
        stmt = select(func.count(BookingSnapshotRecord.id)).where(
            BookingSnapshotRecord.customer_identity == identity,
            func.lower(BookingSnapshotRecord.status).in_(self._counted_statuses),
            event_time >= boundary,
        )
        try:
            result = await self._session.execute(stmt)
        except (OperationalError, ProgrammingError) as exc:
            if _is_missing_table(exc):
                await self._session.rollback()
                return 0
            raise LedgerStorageError(f"Booking snapshot read failed: {exc}") from exc
        except SQLAlchemyError as exc:
            raise LedgerStorageError(f"Booking snapshot read failed: {exc}") from exc
        return int(result.scalar_one() or 0)


__all__ = ["AppendResult", "BookingSnapshotRepository", "LedgerStore", "ensure_aware"]
