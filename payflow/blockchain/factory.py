"""Chain client factory.

Provides the network registry and a factory for the chain client used by
the sweep engine.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from payflow.blockchain.base import ChainClient
from payflow.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkInfo:
    """Static facts about a supported EVM network."""

    name: str
    chain_id: int
    usdc_address: str
    explorer_url: str


NETWORKS = {
    "mainnet": NetworkInfo(
        name="mainnet",
        chain_id=1,
        usdc_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        explorer_url="https://etherscan.io",
    ),
    "sepolia": NetworkInfo(
        name="sepolia",
        chain_id=11155111,
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        explorer_url="https://sepolia.etherscan.io",
    ),
    "goerli": NetworkInfo(
        name="goerli",
        chain_id=5,
        usdc_address="0x07865c6E87B9F70255377e024ace6630C1Eaa37F",
        explorer_url="https://goerli.etherscan.io",
    ),
    "base": NetworkInfo(
        name="base",
        chain_id=8453,
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        explorer_url="https://basescan.org",
    ),
    "base-sepolia": NetworkInfo(
        name="base-sepolia",
        chain_id=84532,
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        explorer_url="https://sepolia.basescan.org",
    ),
}

# Aliases accepted from configuration
NETWORK_ALIASES = {
    "ethereum": "mainnet",
    "eth": "mainnet",
    "base_sepolia": "base-sepolia",
}


def normalize_network(network: str) -> str:
    """Lower-case a network name and resolve aliases."""
    name = network.strip().lower()
    return NETWORK_ALIASES.get(name, name)


def get_network(network: str) -> NetworkInfo:
    """Get network facts.

    Raises:
        ConfigError: If the network is not supported
    """
    info = NETWORKS.get(normalize_network(network))
    if info is None:
        raise ConfigError(
            f"Unsupported network: {network}",
            details={"supported": get_supported_networks()},
        )
    return info


@lru_cache(maxsize=8)
def get_chain_client(network: str, rpc_url: str) -> ChainClient:
    """Get chain client for the specified network.

    Uses caching to reuse client instances.

    Raises:
        ConfigError: If the network is not supported or the RPC URL is missing
    """
    from payflow.blockchain.ethereum import EthereumChainClient

    info = get_network(network)
    return EthereumChainClient(network=info.name, rpc_url=rpc_url)


def get_supported_networks() -> list[str]:
    """Get list of supported network names."""
    return list(NETWORKS)


async def close_all_clients() -> None:
    """Forget cached chain clients."""
    get_chain_client.cache_clear()
    logger.info("Chain client cache cleared")
