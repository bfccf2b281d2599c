"""
YieldPilot Configuration

This module defines the configuration settings for executing yield
strategies against strategy vaults on the supported networks
(Rootstock, Celo, Saga).

Configuration is loaded from environment variables with sensible defaults
for testnet development. Per-network values use a nested delimiter, for
example YIELDPILOT_ROOTSTOCK__STRATEGY_VAULT_ADDRESS.

SECURITY NOTE: The agent signing key should come from a secrets manager in
production rather than a plain environment variable.
"""

import logging
import os
import warnings
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class SecurityWarning(UserWarning):
    """Warning for security-related issues (insecure configurations, etc.)."""

    pass


class ConfigurationError(Exception):
    """Raised when a required address or credential is missing."""

    pass


class NetworkName(str, Enum):
    """Networks a strategy vault can be deployed on."""

    ROOTSTOCK = "rootstock"
    CELO = "celo"
    SAGA = "saga"


# Public testnet RPC endpoints for each network
RPC_ENDPOINTS = {
    NetworkName.ROOTSTOCK: "https://public-node.testnet.rsk.co/",
    NetworkName.CELO: "https://alfajores-forno.celo-testnet.org/",
    NetworkName.SAGA: "https://forge-2743785636557000-1.jsonrpc.sagarpc.io/",
}


class NetworkSettings(BaseModel):
    """Addresses and observed rate for a single network."""

    rpc_url: str = Field(default="", description="JSON-RPC endpoint")
    strategy_vault_address: str = Field(
        default="", description="StrategyVault contract holding pooled assets"
    )
    lending_pool_address: str = Field(
        default="", description="Lending pool accepting vault deposits"
    )
    token_address: str = Field(
        default="", description="Settlement token approved for the lending pool"
    )
    current_apy: float = Field(
        default=5.0, description="Currently observed lending APY, in percent"
    )


class NetworkContext(BaseModel):
    """
    Resolved, read-only view of the active network.

    Built once per invocation from YieldPilotConfig. The execution core only
    depends on these values, never on how they were loaded.
    """

    model_config = ConfigDict(frozen=True)

    network: NetworkName
    rpc_url: str
    strategy_vault_address: str
    lending_pool_address: str
    token_address: str
    current_apy: float

    def require_addresses(self) -> None:
        """Raise ConfigurationError if any contract address is missing."""
        missing = [
            label
            for label, value in (
                ("strategy vault", self.strategy_vault_address),
                ("lending pool", self.lending_pool_address),
                ("token", self.token_address),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"{', '.join(missing)} address not configured for network: "
                f"{self.network.value}"
            )


class YieldPilotConfig(BaseSettings):
    """
    Main configuration class for strategy execution.

    All settings can be overridden via environment variables prefixed with
    YIELDPILOT_. For example, YIELDPILOT_PINATA_JWT sets the pinata_jwt field.
    """

    # Network selection
    current_network: NetworkName = Field(
        default=NetworkName.ROOTSTOCK, description="Network strategies execute on"
    )
    rootstock: NetworkSettings = Field(
        default_factory=lambda: NetworkSettings(rpc_url=RPC_ENDPOINTS[NetworkName.ROOTSTOCK])
    )
    celo: NetworkSettings = Field(
        default_factory=lambda: NetworkSettings(rpc_url=RPC_ENDPOINTS[NetworkName.CELO])
    )
    saga: NetworkSettings = Field(
        default_factory=lambda: NetworkSettings(rpc_url=RPC_ENDPOINTS[NetworkName.SAGA])
    )

    # Wallet Configuration
    agent_private_key: str | None = Field(
        default=None,
        description="Private key of the agent wallet that signs vault transactions. "
        "SECURITY: Use secrets manager in production!",
    )

    # Content-addressed storage (Pinata / IPFS)
    pinata_jwt: str | None = Field(default=None, description="Pinata API JWT")
    pinata_api_url: str = Field(
        default="https://api.pinata.cloud/pinning/pinJSONToIPFS",
        description="Pinata JSON pinning endpoint",
    )
    gateway_host: str = Field(
        default="ipfs.io", description="Public IPFS gateway used for retrieval URLs"
    )
    pinata_gateway_host: str = Field(
        default="gateway.pinata.cloud", description="Pinata gateway used for mirror URLs"
    )
    upload_timeout_seconds: float = Field(default=30.0, description="Upload request timeout")

    # Transactions
    receipt_timeout_seconds: int = Field(
        default=300, description="Maximum time to wait for a transaction to be mined"
    )
    default_strategy_id: int = Field(
        default=1, description="Strategy id anchored when a strategy has none"
    )

    # Deduplication
    dedup_ttl_seconds: int = Field(
        default=86400, description="How long a handled request id is remembered"
    )
    dedup_max_entries: int = Field(
        default=10000, description="Upper bound on remembered request ids"
    )
    redis_url: str | None = Field(
        default=None, description="Optional Redis URL for a shared dedup store"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="Emit JSON logs (production)")

    @field_validator("agent_private_key")
    @classmethod
    def validate_private_key_security(cls, v: str | None, info: ValidationInfo) -> str | None:
        """Warn about signing keys loaded from the environment in production."""
        if v is not None:
            environment = os.environ.get(
                "YIELDPILOT_ENVIRONMENT", os.environ.get("ENVIRONMENT", "development")
            )
            if environment == "production":
                logger.critical(
                    f"SECURITY CRITICAL: {info.field_name} loaded from environment variable "
                    "in production! Use a secrets manager for signing keys."
                )
                warnings.warn(
                    f"Private key '{info.field_name}' loaded from environment variable "
                    "in production. This is insecure! Use a secrets manager.",
                    SecurityWarning,
                    stacklevel=2,
                )
        return v

    def get_network_settings(self, network: NetworkName | None = None) -> NetworkSettings:
        """Get the settings block for a network (the current one by default)."""
        network = network or self.current_network
        settings: NetworkSettings = getattr(self, network.value)
        return settings

    def resolve_network_context(self, network: NetworkName | None = None) -> NetworkContext:
        """Resolve the read-only NetworkContext for a network."""
        network = network or self.current_network
        settings = self.get_network_settings(network)
        logger.info(f"Using network: {network.value}")
        return NetworkContext(
            network=network,
            rpc_url=settings.rpc_url or RPC_ENDPOINTS[network],
            strategy_vault_address=settings.strategy_vault_address,
            lending_pool_address=settings.lending_pool_address,
            token_address=settings.token_address,
            current_apy=settings.current_apy,
        )

    model_config = SettingsConfigDict(
        env_prefix="YIELDPILOT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )


# Singleton instance for global access
_config: YieldPilotConfig | None = None


def get_yieldpilot_config() -> YieldPilotConfig:
    """
    Get the global configuration instance.

    Configuration is loaded once per process.
    """
    global _config
    if _config is None:
        _config = YieldPilotConfig()
    return _config


def configure_yieldpilot(config: YieldPilotConfig) -> None:
    """
    Set a custom configuration instance.

    Useful for testing or when configuration needs to be loaded
    from a non-standard source.
    """
    global _config
    _config = config
