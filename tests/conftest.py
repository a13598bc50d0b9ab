from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from payflow.blockchain.base import (
    ChainClient,
    ConfirmationReceipt,
    TransactionStatus,
    TransferRequest,
)
from payflow.core.exceptions import ConfirmationTimeout
from payflow.utils.predicate import encode_transfer_call

TOKEN = "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"
TREASURY = "0x" + "ab" * 20
WALLET_A = "0x" + "11" * 20
WALLET_B = "0x" + "22" * 20
WALLET_C = "0x" + "33" * 20


# -------------------------------------------------------------------------
# Fakes
# -------------------------------------------------------------------------


class FakeChainClient(ChainClient):
    """In-memory chain: balances per address, every broadcast recorded."""

    def __init__(self, network: str = "sepolia") -> None:
        self._network = network
        self.native: dict[str, Decimal] = {}
        self.tokens: dict[str, Decimal] = {}
        self.built: list[TransferRequest] = []
        self.sent: list[str] = []
        self.receipt_status = TransactionStatus.CONFIRMED
        self.confirm_error: Exception | None = None
        self.balance_error: Exception | None = None
        self.send_delay = 0.0

    @property
    def network(self) -> str:
        return self._network

    async def get_native_balance(self, address: str) -> Decimal:
        if self.balance_error is not None:
            raise self.balance_error
        return self.native.get(address, Decimal("0"))

    async def get_token_balance(self, token_address: str, address: str, decimals: int = 6) -> Decimal:
        if self.balance_error is not None:
            raise self.balance_error
        return self.tokens.get(address, Decimal("0"))

    async def build_token_transfer(
        self, from_address: str, token_address: str, to_address: str, amount_raw: int
    ) -> TransferRequest:
        tx = TransferRequest(
            chain_id=11155111,
            nonce=len(self.built),
            to=token_address,
            data=encode_transfer_call(to_address, amount_raw),
            gas=65000,
            max_fee_per_gas=2_000_000_000,
            max_priority_fee_per_gas=1_000_000_000,
        )
        self.built.append(tx)
        return tx

    async def build_native_transfer(
        self, from_address: str, to_address: str, amount_wei: int
    ) -> TransferRequest:
        tx = TransferRequest(
            chain_id=11155111,
            nonce=len(self.built),
            to=to_address,
            data="0x",
            gas=21000,
            max_fee_per_gas=2_000_000_000,
            max_priority_fee_per_gas=1_000_000_000,
            value=amount_wei,
        )
        self.built.append(tx)
        return tx

    async def send_raw_transaction(self, signed_transaction: str) -> str:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append(signed_transaction)
        return "0x" + format(len(self.sent), "064x")

    async def wait_for_confirmation(
        self, tx_hash: str, confirmations: int = 1, timeout: float = 120.0
    ) -> ConfirmationReceipt:
        if self.confirm_error is not None:
            raise self.confirm_error
        return ConfirmationReceipt(tx_hash=tx_hash, status=self.receipt_status, block_number=1)


class FakeSigner:
    """Delegated signer that records requests and optionally raises."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.error: Exception | None = None

    async def sign_transaction(
        self, isolation_context: str, sign_with: str, unsigned_transaction: str
    ) -> str:
        self.calls.append((isolation_context, sign_with, unsigned_transaction))
        if self.error is not None:
            raise self.error
        return unsigned_transaction + "ff"


def never_confirms() -> Exception:
    return ConfirmationTimeout("Transaction not confirmed within 120s")


# -------------------------------------------------------------------------
# Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()
