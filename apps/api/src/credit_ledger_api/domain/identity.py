"""Customer identity normalization."""

from __future__ import annotations

import re

from credit_ledger_api.core.errors import LedgerValidationError

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$")


def is_valid_email(value: str | None) -> bool:
    if not value:
        return False
    candidate = value.strip()
    if len(candidate) > 190:
        return False
    return bool(_EMAIL_PATTERN.match(candidate))


def normalize_email(value: str | None, *, field: str = "email") -> str:
    """Trim + lowercase an email, raising when it is not syntactically valid."""

    candidate = (value or "").strip().lower()
    if not candidate:
        raise LedgerValidationError(f"Missing {field}", code=f"{field}_required")
    if not is_valid_email(candidate):
        raise LedgerValidationError(f"Invalid {field} address", code=f"invalid_{field}")
    return candidate


def emails_match(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()
