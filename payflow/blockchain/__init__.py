"""Blockchain module.

Provides the chain client abstraction consumed by the sweep engine.
"""

from payflow.blockchain.base import (
    ChainClient,
    ConfirmationReceipt,
    TransactionStatus,
    TransferRequest,
)
from payflow.blockchain.factory import (
    NetworkInfo,
    get_chain_client,
    get_network,
    get_supported_networks,
)

__all__ = [
    "ChainClient",
    "ConfirmationReceipt",
    "NetworkInfo",
    "TransactionStatus",
    "TransferRequest",
    "get_chain_client",
    "get_network",
    "get_supported_networks",
]
