"""Error taxonomy shared by the ledger, webhook and reconciliation services."""

from __future__ import annotations


class CreditLedgerError(RuntimeError):
    """Base class for service errors carrying a machine-readable code."""

    default_code = "credit_ledger_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class WebhookConfigurationError(CreditLedgerError):
    """Raised when webhook verification cannot run because a secret is missing."""

    default_code = "webhook_not_configured"


class WebhookAuthenticationError(CreditLedgerError):
    """Raised when the webhook signature is missing or invalid."""

    default_code = "invalid_signature"


class LedgerValidationError(CreditLedgerError):
    """Raised for malformed emails, zero deltas and missing required fields."""

    default_code = "validation_failed"


class LedgerStorageError(CreditLedgerError):
    """Raised when the ledger cannot be read from or written to."""

    default_code = "storage_failed"


class ExternalProviderError(CreditLedgerError):
    """Raised when a payment or scheduling provider call fails."""

    default_code = "provider_error"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        strategy: str | None = None,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.provider = provider
        self.strategy = strategy
        self.status_code = status_code

    def as_dict(self) -> dict[str, object]:
        return {
            "provider": self.provider,
            "strategy": self.strategy,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
        }


class ProviderTimeoutError(ExternalProviderError):
    """Raised when a provider call exceeds its configured timeout."""

    default_code = "provider_timeout"


__all__ = [
    "CreditLedgerError",
    "ExternalProviderError",
    "LedgerStorageError",
    "LedgerValidationError",
    "ProviderTimeoutError",
    "WebhookAuthenticationError",
    "WebhookConfigurationError",
]
