"""Base chain client interface.

Defines the abstract interface the sweep engine consumes from a chain node.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payflow.utils.amount import from_base_units, to_base_units


class TransactionStatus(str, Enum):
    """Transaction status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class TransferRequest:
    """Unsigned EIP-1559 transaction ready for delegated signing."""

    chain_id: int
    nonce: int
    to: str
    data: str
    gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    value: int = 0


@dataclass
class ConfirmationReceipt:
    """Outcome of waiting for a transaction to be mined."""

    tx_hash: str
    status: TransactionStatus
    block_number: int | None = None
    confirmations: int = 0
    gas_used: int | None = None


class ChainClient(ABC):
    """Abstract base class for chain clients.

    Usage:
        chain = get_chain_client("sepolia")
        balance = await chain.get_token_balance(token, address)
    """

    @property
    @abstractmethod
    def network(self) -> str:
        """Return the network name (e.g., 'sepolia')."""
        pass

    # ============ Balance Operations ============

    @abstractmethod
    async def get_native_balance(self, address: str) -> Decimal:
        """Get native gas balance (ETH).

        Raises:
            ChainError: If the node cannot be queried
        """
        pass

    @abstractmethod
    async def get_token_balance(
        self,
        token_address: str,
        address: str,
        decimals: int = 6,
    ) -> Decimal:
        """Get ERC-20 balance for a specific contract.

        Raises:
            ChainError: If the node cannot be queried
        """
        pass

    # ============ Transaction Operations ============

    @abstractmethod
    async def build_token_transfer(
        self,
        from_address: str,
        token_address: str,
        to_address: str,
        amount_raw: int,
    ) -> TransferRequest:
        """Build an unsigned token transfer for from_address.

        Raises:
            TransactionError: If nonce, fees or gas cannot be determined
        """
        pass

    @abstractmethod
    async def build_native_transfer(
        self,
        from_address: str,
        to_address: str,
        amount_wei: int,
    ) -> TransferRequest:
        """Build an unsigned native (ETH) transfer for from_address.

        Raises:
            TransactionError: If nonce, fees or gas cannot be determined
        """
        pass

    @abstractmethod
    async def send_raw_transaction(self, signed_transaction: str) -> str:
        """Broadcast a signed transaction.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            TransactionError: If the node rejects the transaction
        """
        pass

    @abstractmethod
    async def wait_for_confirmation(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float = 120.0,
    ) -> ConfirmationReceipt:
        """Wait until the transaction has the given number of confirmations.

        Raises:
            ConfirmationTimeout: If not observed within timeout
            ChainError: If the node cannot be queried
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass

    # ============ Utility Methods ============

    def to_smallest_unit(self, amount: Decimal, decimals: int) -> int:
        """Convert amount to smallest unit (e.g., wei)."""
        return to_base_units(amount, decimals)

    def from_smallest_unit(self, amount: int, decimals: int) -> Decimal:
        """Convert from smallest unit to standard unit."""
        return from_base_units(amount, decimals)
