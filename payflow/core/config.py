"""Payflow Sweeper - Core Configuration."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from payflow.core.exceptions import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Payflow Sweeper"
    log_level: str = Field(default="INFO", description="Root log level for scripts and workers")

    # Chain
    network: str = Field(default="sepolia", description="EVM network name")
    eth_rpc_url: str = Field(default="", description="JSON-RPC endpoint for the network")
    usdc_token_address: str = Field(
        default="", description="Token contract to sweep (defaults per network)"
    )

    # Custody backend (Turnkey-style API)
    custody_api_base_url: str = Field(
        default="https://api.turnkey.com", description="Custody API base URL"
    )
    organization_id: str = Field(default="", description="Parent organization ID")
    api_public_key: str = Field(default="", description="P-256 API public key (compressed hex)")
    api_private_key: str = Field(default="", description="P-256 API private key (hex)")
    custody_timeout_seconds: float = Field(default=30.0, description="Custody HTTP timeout")

    # Treasury (destination)
    treasury_address: str = Field(default="", description="Pre-existing treasury address")
    treasury_wallet_id: str = Field(default="", description="Custody wallet ID of the treasury")
    treasury_wallet_name: str = Field(
        default="Treasury Wallet", description="Wallet name used to find or create the treasury"
    )

    # Sweep
    sweep_threshold_usdc: Decimal = Field(
        default=Decimal("0.03"), description="Minimum token balance that triggers a sweep"
    )
    sweep_interval_seconds: float = Field(
        default=300.0, description="Seconds between scheduled sweep iterations"
    )
    confirmation_timeout_seconds: float = Field(
        default=120.0, description="Bounded wait for one confirmation"
    )
    sweep_lock_timeout_seconds: float = Field(
        default=3600.0, description="Expiry of the cross-worker sweep lock"
    )

    # Redis (worker lock and Celery broker)
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for task queue",
    )

    def resolve_token_address(self) -> str:
        """Return the configured token address or the network default.

        Raises:
            ConfigError: If neither is available
        """
        from payflow.blockchain.factory import get_network

        if self.usdc_token_address:
            return self.usdc_token_address
        token = get_network(self.network).usdc_address
        if not token:
            raise ConfigError(f"USDC token address not found for network: {self.network}")
        return token

    def require_custody(self) -> None:
        """Validate the custody credentials needed before any sweep starts."""
        missing = [
            name
            for name in ("organization_id", "api_public_key", "api_private_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(
                "Missing custody configuration",
                details={"missing": [name.upper() for name in missing]},
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
