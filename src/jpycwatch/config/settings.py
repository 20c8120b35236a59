"""Application settings using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jpycwatch.constants.chains import ALCHEMY_RPC_TEMPLATES, DEFAULT_RPC_URLS, ChainId
from jpycwatch.constants.resilience import (
    CACHE_DEFAULT_TTL_SECONDS,
    CACHE_MAX_BYTES,
    AGGREGATION_TIMEOUT_SECONDS,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    RETRY_BACKOFF_FACTOR,
    RETRY_INITIAL_DELAY_SECONDS,
    RETRY_MAX_DELAY_SECONDS,
    RETRY_MAX_RETRIES,
    SOURCE_TIMEOUT_SECONDS,
)
from jpycwatch.core.blacklist import load_blacklist_addresses


class Settings(BaseSettings):
    """JPYCWatch configuration from environment variables.

    Every field is optional; without any environment the service talks to
    public RPC endpoints, skips explorer / holder-index lookups and keeps
    its cache in memory only.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Application
    app_name: str = Field(default="JPYCWatch", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Log level"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")

    # JSON-RPC endpoints
    alchemy_api_key: SecretStr = Field(default=SecretStr(""), description="Alchemy API key")
    ethereum_rpc_url: str | None = Field(default=None, description="Ethereum RPC URL override")
    polygon_rpc_url: str | None = Field(default=None, description="Polygon RPC URL override")
    avalanche_rpc_url: str | None = Field(default=None, description="Avalanche RPC URL override")

    # Block explorers / holder index
    etherscan_api_key: SecretStr = Field(default=SecretStr(""), description="Etherscan API key")
    polygonscan_api_key: SecretStr = Field(
        default=SecretStr(""), description="Polygonscan API key"
    )
    snowtrace_api_key: SecretStr = Field(default=SecretStr(""), description="Snowtrace API key")
    moralis_api_key: SecretStr = Field(default=SecretStr(""), description="Moralis API key")

    # Blacklist (comma-separated addresses)
    blacklist_addresses: str = Field(
        default="", description="Comma-separated blacklisted addresses"
    )

    # Cache
    cache_dir: Path | None = Field(
        default=None, description="Durable cache directory (memory only when unset)"
    )
    cache_max_bytes: int = Field(
        default=CACHE_MAX_BYTES, ge=1024, description="Durable cache byte quota"
    )
    cache_ttl_seconds: float = Field(
        default=CACHE_DEFAULT_TTL_SECONDS, gt=0, description="On-chain snapshot TTL"
    )

    # Resilience
    rpc_timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout")
    source_timeout_seconds: float = Field(
        default=SOURCE_TIMEOUT_SECONDS,
        gt=0,
        description="Deadline for one source (retries included) of a primary/fallback pair",
    )
    parallel_timeout_seconds: float = Field(
        default=AGGREGATION_TIMEOUT_SECONDS,
        gt=0,
        description="Per-operation deadline covering primary and fallback",
    )
    retry_max_retries: int = Field(default=RETRY_MAX_RETRIES, ge=0, description="Max retries")
    retry_initial_delay: float = Field(
        default=RETRY_INITIAL_DELAY_SECONDS, ge=0, description="First backoff delay"
    )
    retry_max_delay: float = Field(
        default=RETRY_MAX_DELAY_SECONDS, ge=0, description="Backoff delay cap"
    )
    retry_backoff_factor: float = Field(
        default=RETRY_BACKOFF_FACTOR, ge=1, description="Backoff multiplier"
    )
    rate_limit_max_requests: int = Field(
        default=RATE_LIMIT_MAX_REQUESTS, ge=1, description="Requests per window per source"
    )
    rate_limit_window_seconds: float = Field(
        default=RATE_LIMIT_WINDOW_SECONDS, gt=0, description="Sliding window length"
    )

    # Circuit Breaker
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, description="Failures before circuit opens"
    )
    circuit_breaker_cooldown: int = Field(
        default=30, ge=1, description="Seconds before half-open"
    )

    # Price feed
    coingecko_coin_id: str = Field(default="jpycoin", description="CoinGecko coin id")
    price_cache_ttl_seconds: float = Field(default=60.0, gt=0, description="Price cache TTL")

    @field_validator("ethereum_rpc_url", "polygon_rpc_url", "avalanche_rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format (blank means "not set")."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must start with http:// or https://")
        return v.strip()

    @model_validator(mode="after")
    def validate_timeouts(self) -> "Settings":
        """Each source must fit one HTTP attempt, and a pair must fit both sources."""
        if self.source_timeout_seconds < self.rpc_timeout_seconds:
            raise ValueError("source_timeout_seconds must be >= rpc_timeout_seconds")
        if self.parallel_timeout_seconds <= 2 * self.source_timeout_seconds:
            raise ValueError(
                "parallel_timeout_seconds must exceed twice source_timeout_seconds "
                "so the fallback still runs after a primary times out"
            )
        return self

    def rpc_url_for(self, chain: ChainId) -> str:
        """Resolve the RPC endpoint for a chain.

        Order: explicit override, Alchemy template (if a key is set),
        public default.
        """
        override = getattr(self, f"{chain.value.lower()}_rpc_url")
        if override:
            return override
        alchemy_key = self.alchemy_api_key.get_secret_value()
        if alchemy_key:
            return ALCHEMY_RPC_TEMPLATES[chain].format(api_key=alchemy_key)
        return DEFAULT_RPC_URLS[chain]

    def explorer_api_key_for(self, chain: ChainId) -> str:
        """Return the block-explorer API key for a chain ('' when unset)."""
        keys = {
            ChainId.ETHEREUM: self.etherscan_api_key,
            ChainId.POLYGON: self.polygonscan_api_key,
            ChainId.AVALANCHE: self.snowtrace_api_key,
        }
        return keys[chain].get_secret_value()

    @property
    def blacklist(self) -> list[str]:
        """Normalized (lowercase, valid, de-duplicated) blacklist."""
        return load_blacklist_addresses(self.blacklist_addresses)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
