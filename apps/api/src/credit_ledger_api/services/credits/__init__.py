from .status import CreditStatus, CreditStatusService

__all__ = ["CreditStatus", "CreditStatusService"]
