"""Payflow Sweeper - Custom exceptions."""

from decimal import Decimal
from typing import Any


class PayflowError(Exception):
    """Base exception for all Payflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigError(PayflowError):
    """Required configuration is missing or invalid."""

    pass


class CustodyError(PayflowError):
    """Custody backend request failed."""

    pass


class DirectoryError(CustodyError):
    """Merchant account listing is unavailable."""

    pass


class ValidationError(PayflowError):
    """Input validation failed."""

    pass


class InvalidAddress(ValidationError):
    """Value is not a 20-byte hex address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Invalid address: {address!r}", {"address": address})


class InsufficientBalanceError(PayflowError):
    """Sending wallet cannot cover the requested transfer."""

    def __init__(
        self,
        message: str,
        required: Decimal | None = None,
        available: Decimal | None = None,
    ) -> None:
        details = {}
        if required is not None:
            details["required"] = str(required)
        if available is not None:
            details["available"] = str(available)
        super().__init__(message, details)


class SigningError(CustodyError):
    """Delegated signing did not produce a signature."""

    pass


class SigningRejected(SigningError):
    """Custody backend refused to sign (policy evaluation denied it)."""

    pass


class SigningUnavailable(SigningError):
    """Custody backend could not be reached or failed internally."""

    pass


class ChainError(PayflowError):
    """Blockchain interaction error."""

    pass


class TransactionError(ChainError):
    """Transaction build or broadcast error."""

    pass


class ConfirmationTimeout(ChainError):
    """Confirmation was not observed within the allowed wait."""

    pass
