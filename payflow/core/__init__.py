"""Core module - configuration, security, and exceptions."""

from payflow.core.config import Settings, get_settings
from payflow.core.exceptions import (
    ChainError,
    ConfigError,
    ConfirmationTimeout,
    CustodyError,
    DirectoryError,
    InsufficientBalanceError,
    InvalidAddress,
    PayflowError,
    SigningError,
    SigningRejected,
    SigningUnavailable,
    TransactionError,
    ValidationError,
)
from payflow.core.security import ApiKeyStamper, generate_api_key

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Security
    "ApiKeyStamper",
    "generate_api_key",
    # Exceptions
    "PayflowError",
    "ConfigError",
    "CustodyError",
    "DirectoryError",
    "ValidationError",
    "InvalidAddress",
    "InsufficientBalanceError",
    "SigningError",
    "SigningRejected",
    "SigningUnavailable",
    "ChainError",
    "TransactionError",
    "ConfirmationTimeout",
]
