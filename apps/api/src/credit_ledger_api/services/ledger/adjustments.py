"""Operator-initiated credit corrections."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass

from loguru import logger

from credit_ledger_api.core.errors import LedgerValidationError
from credit_ledger_api.domain.identity import normalize_email
from credit_ledger_api.models.ledger import LedgerEntry, LedgerSourceEnum
from credit_ledger_api.services.ledger.store import LedgerStore

DEFAULT_REASON = "Manual adjustment"
_ACTOR_SAFE = re.compile(r"[^A-Za-z0-9_.@-]+")


@dataclass(slots=True)
class AdjustmentResult:
    entry: LedgerEntry
    balance: int


def manual_external_id(actor: str, *, now: float | None = None) -> str:
    """``admin_<unix-ts>_<actor>``; informational only, duplicates are allowed."""

    timestamp = int(now if now is not None else time.time())
    safe_actor = _ACTOR_SAFE.sub("_", actor.strip()) or "admin"
    return f"admin_{timestamp}_{safe_actor}"


class ManualAdjustmentService:
    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def adjust(
        self,
        email: str,
        delta: int,
        reason: str | None = None,
        actor: str = "admin",
    ) -> AdjustmentResult:
        """Append a ``manual`` entry and return it with the new balance."""

        identity = normalize_email(email)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise LedgerValidationError("Delta must be an integer", code="invalid_delta")
        if delta == 0:
            raise LedgerValidationError("Delta must be non-zero", code="zero_delta")

        note = (reason or "").strip() or DEFAULT_REASON
        result = await self._store.append_entry(
            identity,
            delta,
            LedgerSourceEnum.MANUAL,
            external_id=manual_external_id(actor or "admin"),
            note=note,
        )
        await self._store.commit()
        balance = await self._store.get_balance(identity)
        logger.info(
            "Manual credit adjustment applied",
            customer_identity=identity,
            delta=delta,
            actor=actor,
            balance=balance,
        )
        return AdjustmentResult(entry=result.entry, balance=balance)


__all__ = ["AdjustmentResult", "DEFAULT_REASON", "ManualAdjustmentService", "manual_external_id"]
