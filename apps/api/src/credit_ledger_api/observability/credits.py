"""In-memory observability helper for webhook ingestion and purchase lookups."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class WebhookEventLog:
    last_event_at: datetime | None = None
    last_event_type: str | None = None
    last_session_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class LookupEventLog:
    last_lookup_at: datetime | None = None
    last_strategy: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class CreditObservabilitySnapshot:
    webhook_totals: Dict[str, int]
    webhook_events: WebhookEventLog
    strategy_hits: Dict[str, int]
    strategy_failures: Dict[str, int]
    lookup_totals: Dict[str, int]
    lookup_events: LookupEventLog
    scheduling_totals: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "webhooks": {
                "totals": self.webhook_totals,
                "events": {
                    "last_event_at": _iso(self.webhook_events.last_event_at),
                    "last_event_type": self.webhook_events.last_event_type,
                    "last_session_id": self.webhook_events.last_session_id,
                    "last_failure_at": _iso(self.webhook_events.last_failure_at),
                    "last_failure_reason": self.webhook_events.last_failure_reason,
                },
            },
            "lookups": {
                "totals": self.lookup_totals,
                "strategy_hits": self.strategy_hits,
                "strategy_failures": self.strategy_failures,
                "events": {
                    "last_lookup_at": _iso(self.lookup_events.last_lookup_at),
                    "last_strategy": self.lookup_events.last_strategy,
                    "last_failure_at": _iso(self.lookup_events.last_failure_at),
                    "last_failure_reason": self.lookup_events.last_failure_reason,
                },
            },
            "scheduling": {"totals": self.scheduling_totals},
        }


@dataclass
class CreditObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _webhook_totals: Counter = field(default_factory=Counter)
    _webhook_events: WebhookEventLog = field(default_factory=WebhookEventLog)
    _strategy_hits: Counter = field(default_factory=Counter)
    _strategy_failures: Counter = field(default_factory=Counter)
    _lookup_totals: Counter = field(default_factory=Counter)
    _lookup_events: LookupEventLog = field(default_factory=LookupEventLog)
    _scheduling_totals: Counter = field(default_factory=Counter)

    def record_webhook(
        self,
        outcome: str,
        *,
        event_type: str | None = None,
        session_id: str | None = None,
        error: str | None = None,
    ) -> None:
        """``outcome`` is one of credited, duplicate, ignored, rejected, failed."""

        with self._lock:
            self._webhook_totals[outcome] += 1
            now = _utcnow()
            self._webhook_events.last_event_at = now
            self._webhook_events.last_event_type = event_type
            if session_id:
                self._webhook_events.last_session_id = session_id
            if error:
                self._webhook_events.last_failure_at = now
                self._webhook_events.last_failure_reason = error

    def record_lookup(
        self,
        *,
        matched_strategy: str | None,
        failed_strategies: list[str],
        error: str | None = None,
    ) -> None:
        with self._lock:
            now = _utcnow()
            self._lookup_events.last_lookup_at = now
            if matched_strategy:
                self._lookup_totals["found"] += 1
                self._strategy_hits[matched_strategy] += 1
                self._lookup_events.last_strategy = matched_strategy
            elif error:
                self._lookup_totals["failed"] += 1
            else:
                self._lookup_totals["not_found"] += 1
            for strategy in failed_strategies:
                self._strategy_failures[strategy] += 1
            if error:
                self._lookup_events.last_failure_at = now
                self._lookup_events.last_failure_reason = error

    def record_scheduling(self, outcome: str) -> None:
        with self._lock:
            self._scheduling_totals[outcome] += 1

    def snapshot(self) -> CreditObservabilitySnapshot:
        with self._lock:
            return CreditObservabilitySnapshot(
                webhook_totals=dict(self._webhook_totals),
                webhook_events=WebhookEventLog(**vars(self._webhook_events)),
                strategy_hits=dict(self._strategy_hits),
                strategy_failures=dict(self._strategy_failures),
                lookup_totals=dict(self._lookup_totals),
                lookup_events=LookupEventLog(**vars(self._lookup_events)),
                scheduling_totals=dict(self._scheduling_totals),
            )

    def reset(self) -> None:
        with self._lock:
            self._webhook_totals.clear()
            self._strategy_hits.clear()
            self._strategy_failures.clear()
            self._lookup_totals.clear()
            self._scheduling_totals.clear()
            self._webhook_events = WebhookEventLog()
            self._lookup_events = LookupEventLog()


_CREDIT_STORE = CreditObservabilityStore()


def get_credit_store() -> CreditObservabilityStore:
    return _CREDIT_STORE
