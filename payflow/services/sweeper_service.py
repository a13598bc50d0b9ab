"""Payflow Sweeper - Single-wallet sweep.

Moves the full token balance of one merchant deposit wallet to the
treasury. Signing happens in the custody backend inside the merchant's
sub-organization, where the transfer restriction is evaluated before any
signature is produced.

Every call returns a classified SweepOutcome; expected conditions (no
gas, no balance, below threshold) are outcomes, not exceptions.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from payflow.blockchain.base import ChainClient, TransactionStatus
from payflow.blockchain.ethereum import serialize_unsigned
from payflow.blockchain.factory import normalize_network
from payflow.core.exceptions import ChainError, SigningRejected, SigningUnavailable
from payflow.utils.amount import USDC_DECIMALS, to_base_units

logger = logging.getLogger(__name__)


class SweepOutcomeKind(str, Enum):
    """Stable classification of a sweep attempt."""

    SUCCESS = "success"
    # Skips
    INSUFFICIENT_GAS = "insufficient_gas"
    NO_BALANCE = "no_balance"
    BELOW_THRESHOLD = "below_threshold"
    # Failures
    SIGNING_REJECTED = "signing_rejected"
    SIGNING_UNAVAILABLE = "signing_unavailable"
    TRANSACTION_FAILED = "transaction_failed"
    CONFIRMATION_UNKNOWN = "confirmation_unknown"
    BALANCE_UNAVAILABLE = "balance_unavailable"
    BROADCAST_FAILED = "broadcast_failed"
    ADDRESS_UNAVAILABLE = "address_unavailable"
    NETWORK_MISMATCH = "network_mismatch"
    UNEXPECTED_ERROR = "unexpected_error"


SKIP_KINDS = frozenset(
    {
        SweepOutcomeKind.INSUFFICIENT_GAS,
        SweepOutcomeKind.NO_BALANCE,
        SweepOutcomeKind.BELOW_THRESHOLD,
    }
)


class SweepStatus(str, Enum):
    """Coarse result of a sweep attempt."""

    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SweepOutcome:
    """Result of one sweep attempt (never persisted)."""

    kind: SweepOutcomeKind
    source_address: str | None
    isolation_context: str
    wallet_id: str | None = None
    amount: Decimal | None = None
    tx_hash: str | None = None
    message: str | None = None

    @property
    def status(self) -> SweepStatus:
        if self.kind == SweepOutcomeKind.SUCCESS:
            return SweepStatus.SUCCESS
        if self.kind in SKIP_KINDS:
            return SweepStatus.SKIPPED
        return SweepStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status == SweepStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        return self.status == SweepStatus.SKIPPED

    @property
    def failed(self) -> bool:
        return self.status == SweepStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "source_address": self.source_address,
            "isolation_context": self.isolation_context,
            "wallet_id": self.wallet_id,
            "amount": str(self.amount) if self.amount is not None else None,
            "tx_hash": self.tx_hash,
            "message": self.message,
        }


class DelegatedSigner(Protocol):
    """Remote signer holding keys for merchant sub-organizations."""

    async def sign_transaction(
        self,
        isolation_context: str,
        sign_with: str,
        unsigned_transaction: str,
    ) -> str: ...


class SweeperService:
    """Sweep one deposit wallet to the treasury.

    Workflow:
    1. Check the wallet holds enough ETH for one token transfer
    2. Check the token balance (zero / below threshold are skips)
    3. Build a transfer of the entire balance and have it signed remotely
    4. Broadcast and keep the tx hash
    5. Wait (bounded) for one confirmation

    Usage:
        sweeper = SweeperService(chain, custody)
        outcome = await sweeper.sweep(address, sub_org_id, wallet_id, ...)
    """

    # ETH reserve sufficient for one ERC-20 transfer
    MIN_GAS_RESERVE = Decimal("0.0005")

    REQUIRED_CONFIRMATIONS = 1

    def __init__(
        self,
        chain: ChainClient,
        signer: DelegatedSigner,
        confirmation_timeout: float = 120.0,
        token_decimals: int = USDC_DECIMALS,
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._confirmation_timeout = confirmation_timeout
        self._token_decimals = token_decimals

    async def sweep(
        self,
        source_address: str,
        isolation_context: str,
        wallet_id: str | None,
        destination_address: str,
        token_address: str,
        network: str,
        threshold: Decimal,
        min_gas: Decimal | None = None,
        signing_key_id: str | None = None,
    ) -> SweepOutcome:
        """Sweep the full token balance of source_address.

        Args:
            source_address: Merchant deposit wallet address
            isolation_context: Sub-organization holding the wallet's key
            wallet_id: Custody wallet handle (reported only)
            destination_address: Treasury address
            token_address: ERC-20 contract to sweep
            network: Network the wallet lives on
            threshold: Minimum balance worth sweeping
            min_gas: ETH reserve required (default MIN_GAS_RESERVE)
            signing_key_id: Linked signing key; defaults to source_address

        Returns:
            SweepOutcome; this method does not raise
        """
        base = {
            "source_address": source_address,
            "isolation_context": isolation_context,
            "wallet_id": wallet_id,
        }
        try:
            return await self._sweep(
                base,
                source_address,
                isolation_context,
                destination_address,
                token_address,
                network,
                threshold,
                self.MIN_GAS_RESERVE if min_gas is None else min_gas,
                signing_key_id or source_address,
            )
        except Exception as e:
            logger.error(f"Unexpected error sweeping {source_address}: {e}", exc_info=True)
            return SweepOutcome(kind=SweepOutcomeKind.UNEXPECTED_ERROR, message=str(e), **base)

    async def _sweep(
        self,
        base: dict[str, Any],
        source_address: str,
        isolation_context: str,
        destination_address: str,
        token_address: str,
        network: str,
        threshold: Decimal,
        min_gas: Decimal,
        sign_with: str,
    ) -> SweepOutcome:
        chain = self._chain
        if normalize_network(network) != chain.network:
            return SweepOutcome(
                kind=SweepOutcomeKind.NETWORK_MISMATCH,
                message=f"Chain client is for {chain.network}, not {network}",
                **base,
            )

        # CheckGas
        try:
            native_balance = await chain.get_native_balance(source_address)
        except ChainError as e:
            logger.warning(f"Gas balance unavailable for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.BALANCE_UNAVAILABLE, message=e.message, **base
            )

        if native_balance < min_gas:
            logger.debug(f"Skipping {source_address}: {native_balance} ETH < {min_gas} ETH")
            return SweepOutcome(
                kind=SweepOutcomeKind.INSUFFICIENT_GAS,
                message=f"Insufficient ETH for gas fees ({native_balance} < {min_gas})",
                **base,
            )

        # CheckBalance
        try:
            balance = await chain.get_token_balance(
                token_address, source_address, self._token_decimals
            )
        except ChainError as e:
            logger.warning(f"Token balance unavailable for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.BALANCE_UNAVAILABLE, message=e.message, **base
            )

        if balance <= 0:
            logger.debug(f"Skipping {source_address}: no token balance")
            return SweepOutcome(
                kind=SweepOutcomeKind.NO_BALANCE, message="No USDC balance", **base
            )
        if balance < threshold:
            logger.debug(f"Skipping {source_address}: {balance} below threshold {threshold}")
            return SweepOutcome(
                kind=SweepOutcomeKind.BELOW_THRESHOLD,
                message=f"Balance {balance} USDC is below threshold {threshold} USDC",
                **base,
            )

        # Transfer: the entire balance, so a swept wallet has nothing left to resweep
        amount = balance
        logger.info(f"Sweeping {amount} USDC from {source_address} to {destination_address}")

        try:
            tx_request = await chain.build_token_transfer(
                source_address,
                token_address,
                destination_address,
                to_base_units(amount, self._token_decimals),
            )
        except ChainError as e:
            logger.warning(f"Could not build transfer for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.TRANSACTION_FAILED, amount=amount, message=e.message, **base
            )

        try:
            signed = await self._signer.sign_transaction(
                isolation_context, sign_with, serialize_unsigned(tx_request)
            )
        except SigningRejected as e:
            logger.warning(f"Signing rejected for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.SIGNING_REJECTED, amount=amount, message=e.message, **base
            )
        except SigningUnavailable as e:
            logger.warning(f"Signer unavailable for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.SIGNING_UNAVAILABLE,
                amount=amount,
                message=e.message,
                **base,
            )

        # Broadcast
        try:
            tx_hash = await chain.send_raw_transaction(signed)
        except ChainError as e:
            logger.warning(f"Broadcast failed for {source_address}: {e.message}")
            return SweepOutcome(
                kind=SweepOutcomeKind.BROADCAST_FAILED, amount=amount, message=e.message, **base
            )

        # Confirm: past this point the tx hash is always reported
        try:
            receipt = await chain.wait_for_confirmation(
                tx_hash, self.REQUIRED_CONFIRMATIONS, self._confirmation_timeout
            )
        except Exception as e:
            logger.warning(f"Confirmation unknown for {tx_hash}: {e}")
            return SweepOutcome(
                kind=SweepOutcomeKind.CONFIRMATION_UNKNOWN,
                amount=amount,
                tx_hash=tx_hash,
                message=str(e),
                **base,
            )

        if receipt.status == TransactionStatus.FAILED:
            logger.warning(f"Sweep transaction reverted: tx={tx_hash}")
            return SweepOutcome(
                kind=SweepOutcomeKind.TRANSACTION_FAILED,
                amount=amount,
                tx_hash=tx_hash,
                message="Transaction reverted",
                **base,
            )

        logger.info(f"Sweep complete: tx={tx_hash}")
        return SweepOutcome(
            kind=SweepOutcomeKind.SUCCESS, amount=amount, tx_hash=tx_hash, **base
        )
