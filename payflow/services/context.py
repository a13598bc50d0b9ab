"""Process context - explicit wiring of the sweep engine.

Built once at process start and passed to whatever needs it, so there is
no module-level mutable state (the treasury is cached on its service).
"""

import logging
from dataclasses import dataclass

from payflow.blockchain.base import ChainClient
from payflow.blockchain.factory import NetworkInfo, close_all_clients, get_chain_client, get_network
from payflow.core.config import Settings, get_settings
from payflow.core.exceptions import ConfigError, InvalidAddress
from payflow.services.custody_service import CustodyService
from payflow.services.funding_service import FundingService
from payflow.services.policy_service import PolicyService
from payflow.services.scheduler_service import SchedulerService
from payflow.services.sweeper_service import SweeperService
from payflow.services.treasury_service import TreasuryService
from payflow.utils.predicate import normalize_address

logger = logging.getLogger(__name__)


@dataclass
class SweepContext:
    """Collaborators shared by scripts and workers."""

    settings: Settings
    network: NetworkInfo
    token_address: str
    chain: ChainClient
    custody: CustodyService
    treasury: TreasuryService
    policies: PolicyService
    sweeper: SweeperService
    funding: FundingService

    async def scheduler(self) -> SchedulerService:
        """Scheduler bound to the resolved treasury.

        Raises:
            ConfigError: If the treasury cannot be resolved
        """
        treasury = await self.treasury.get_or_create()
        return SchedulerService(
            sweeper=self.sweeper,
            destination_address=treasury.address,
            token_address=self.token_address,
            network=self.network.name,
            threshold=self.settings.sweep_threshold_usdc,
        )

    async def close(self) -> None:
        await self.custody.close()
        await self.chain.close()
        await close_all_clients()


def build_context(settings: Settings | None = None) -> SweepContext:
    """Validate configuration and wire the sweep engine.

    Raises:
        ConfigError: If any required setting is missing or invalid
    """
    settings = settings or get_settings()
    network = get_network(settings.network)

    try:
        token_address = normalize_address(settings.resolve_token_address())
    except InvalidAddress as e:
        raise ConfigError(f"USDC_TOKEN_ADDRESS is invalid: {e.message}") from e

    custody = CustodyService.from_settings(settings)
    chain = get_chain_client(network.name, settings.eth_rpc_url)
    logger.info(f"Sweep context ready: network={network.name}, token={token_address}")

    return SweepContext(
        settings=settings,
        network=network,
        token_address=token_address,
        chain=chain,
        custody=custody,
        treasury=TreasuryService(settings, custody),
        policies=PolicyService(custody),
        sweeper=SweeperService(
            chain,
            custody,
            confirmation_timeout=settings.confirmation_timeout_seconds,
        ),
        funding=FundingService(
            chain,
            custody,
            custody.organization_id,
            token_address,
            confirmation_timeout=settings.confirmation_timeout_seconds,
        ),
    )
