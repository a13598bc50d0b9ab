"""Treasury Service - Resolve the destination account for swept funds.

Resolution order:
1. Configured TREASURY_ADDRESS (with optional TREASURY_WALLET_ID)
2. Existing custody wallet named TREASURY_WALLET_NAME
3. Newly created custody wallet with that name

The result is cached on the instance for the lifetime of the process.
"""

import asyncio
import logging

from payflow.core.config import Settings
from payflow.core.exceptions import ConfigError, CustodyError, InvalidAddress
from payflow.schemas.merchant import TreasuryWallet
from payflow.services.custody_service import CustodyService
from payflow.utils.predicate import normalize_address

logger = logging.getLogger(__name__)


class TreasuryService:
    """Destination account resolver."""

    def __init__(self, settings: Settings, custody: CustodyService | None = None) -> None:
        self._settings = settings
        self._custody = custody
        self._treasury: TreasuryWallet | None = None
        self._lock = asyncio.Lock()

    async def get_or_create(self) -> TreasuryWallet:
        """Return the treasury, creating it at most once.

        Raises:
            ConfigError: If no treasury can be resolved
        """
        if self._treasury is not None:
            return self._treasury

        async with self._lock:
            if self._treasury is None:
                self._treasury = await self._resolve()
                logger.info(f"Treasury ready: {self._treasury.address}")
            return self._treasury

    async def _resolve(self) -> TreasuryWallet:
        if self._settings.treasury_address:
            try:
                address = normalize_address(self._settings.treasury_address)
            except InvalidAddress as e:
                raise ConfigError(f"TREASURY_ADDRESS is invalid: {e.message}") from e
            return TreasuryWallet(
                address=address,
                wallet_id=self._settings.treasury_wallet_id or None,
            )

        if self._custody is None:
            raise ConfigError("TREASURY_ADDRESS is not set and no custody backend is configured")

        name = self._settings.treasury_wallet_name
        try:
            existing = await self._custody.find_wallet(name)
            if existing is not None:
                logger.info(f"Using existing treasury wallet {existing.wallet_id}")
                return existing

            logger.info(f"Creating treasury wallet {name!r}")
            return await self._custody.create_wallet(name)
        except CustodyError as e:
            raise ConfigError(f"Failed to setup treasury: {e.message}", e.details) from e
