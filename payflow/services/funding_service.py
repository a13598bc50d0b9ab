"""Funding Service - Send ETH or USDC from the treasury to a merchant wallet.

Top-up path for deposit wallets: a wallet holding less ETH than the
sweeper's gas reserve is skipped until it is funded from here. Transfers
are signed by the custody backend in the parent organization, so only a
custody-managed treasury can send.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payflow.blockchain.base import ChainClient, TransactionStatus
from payflow.blockchain.ethereum import serialize_unsigned
from payflow.core.exceptions import (
    ChainError,
    ConfigError,
    InsufficientBalanceError,
    ValidationError,
)
from payflow.schemas.merchant import TreasuryWallet
from payflow.services.sweeper_service import DelegatedSigner
from payflow.utils.amount import ETH_DECIMALS, USDC_DECIMALS, to_base_units
from payflow.utils.predicate import normalize_address

logger = logging.getLogger(__name__)


class FundingAsset(str, Enum):
    """What the treasury can send."""

    ETH = "ETH"
    USDC = "USDC"


@dataclass
class FundingResult:
    """Broadcast transfer; status is None when confirmation is unknown."""

    asset: FundingAsset
    amount: Decimal
    destination_address: str
    tx_hash: str
    status: TransactionStatus | None = None
    message: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED


class FundingService:
    """Treasury to merchant wallet transfers.

    Usage:
        funding = FundingService(chain, custody, custody.organization_id, token)
        result = await funding.fund(treasury, wallet.address, "ETH", Decimal("0.001"))
    """

    # ETH the treasury must hold to pay gas for one token transfer
    MIN_GAS_FOR_TOKEN_TRANSFER = Decimal("0.001")

    REQUIRED_CONFIRMATIONS = 1

    def __init__(
        self,
        chain: ChainClient,
        signer: DelegatedSigner,
        organization_id: str,
        token_address: str,
        confirmation_timeout: float = 120.0,
        token_decimals: int = USDC_DECIMALS,
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._organization_id = organization_id
        self._token_address = token_address
        self._confirmation_timeout = confirmation_timeout
        self._token_decimals = token_decimals

    async def fund(
        self,
        treasury: TreasuryWallet,
        destination_address: str,
        asset: FundingAsset | str,
        amount: Decimal,
    ) -> FundingResult:
        """Send amount of asset from the treasury to destination_address.

        Raises:
            ValidationError: If the asset is unknown, the amount is not
                positive or the destination is malformed
            ConfigError: If the treasury is not custody-managed
            InsufficientBalanceError: If the treasury cannot cover it
            ChainError: If balances, building or broadcast fail
            SigningError: If the custody backend does not sign
        """
        try:
            asset = FundingAsset(asset)
        except ValueError as e:
            raise ValidationError(f"Unsupported asset: {asset}") from e
        if amount <= 0:
            raise ValidationError(f"Amount must be positive, got {amount}")
        if not treasury.wallet_id:
            raise ConfigError(
                "Treasury wallet is not managed by the custody backend; cannot sign transfers"
            )
        destination = normalize_address(destination_address)

        await self._check_balance(treasury.address, asset, amount)

        if asset == FundingAsset.ETH:
            tx = await self._chain.build_native_transfer(
                treasury.address, destination, to_base_units(amount, ETH_DECIMALS)
            )
        else:
            tx = await self._chain.build_token_transfer(
                treasury.address,
                self._token_address,
                destination,
                to_base_units(amount, self._token_decimals),
            )

        signed = await self._signer.sign_transaction(
            self._organization_id, treasury.address, serialize_unsigned(tx)
        )
        tx_hash = await self._chain.send_raw_transaction(signed)
        logger.info(f"Sent {amount} {asset.value} to {destination}: tx={tx_hash}")

        try:
            receipt = await self._chain.wait_for_confirmation(
                tx_hash, self.REQUIRED_CONFIRMATIONS, self._confirmation_timeout
            )
        except ChainError as e:
            logger.warning(f"Confirmation unknown for {tx_hash}: {e.message}")
            return FundingResult(asset, amount, destination, tx_hash, message=e.message)

        return FundingResult(asset, amount, destination, tx_hash, status=receipt.status)

    async def _check_balance(self, address: str, asset: FundingAsset, amount: Decimal) -> None:
        eth_balance = await self._chain.get_native_balance(address)

        if asset == FundingAsset.ETH:
            if eth_balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient ETH balance. Required: {amount} ETH, Available: {eth_balance} ETH",
                    required=amount,
                    available=eth_balance,
                )
            return

        token_balance = await self._chain.get_token_balance(
            self._token_address, address, self._token_decimals
        )
        if token_balance < amount:
            raise InsufficientBalanceError(
                f"Insufficient USDC balance. Required: {amount} USDC, "
                f"Available: {token_balance} USDC",
                required=amount,
                available=token_balance,
            )
        if eth_balance < self.MIN_GAS_FOR_TOKEN_TRANSFER:
            raise InsufficientBalanceError(
                f"Insufficient ETH for gas fees. Need at least "
                f"{self.MIN_GAS_FOR_TOKEN_TRANSFER} ETH, Available: {eth_balance} ETH",
                required=self.MIN_GAS_FOR_TOKEN_TRANSFER,
                available=eth_balance,
            )
