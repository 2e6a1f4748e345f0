"""
Tip Ledger Configuration

This module defines the configuration for tip payments and review ledger
writes on Hedera: network selection, mirror node endpoints, the tip splitter
contract, the reviews topic and the secondary index backend.

Configuration is loaded from environment variables prefixed with EZTIPS_
(or a .env file) with defaults suitable for testnet development.
"""

import logging
import warnings
from decimal import Decimal
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class HederaNetwork(str, Enum):
    """Supported Hedera networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    PREVIEWNET = "previewnet"


# Public mirror node REST endpoints for each network
MIRROR_NODE_URLS = {
    HederaNetwork.MAINNET: "https://mainnet-public.mirrornode.hedera.com/api/v1",
    HederaNetwork.TESTNET: "https://testnet.mirrornode.hedera.com/api/v1",
    HederaNetwork.PREVIEWNET: "https://previewnet.mirrornode.hedera.com/api/v1",
}

# Block explorer used for human-facing review links
EXPLORER_BASE_URL = "https://hashscan.io"

# 1 HBAR = 100,000,000 tinybar
TINYBARS_PER_HBAR = 100_000_000
BASIS_POINTS = 10_000


class TipsConfig(BaseSettings):
    """
    Main configuration class for tip payments and review storage.

    All settings can be overridden via environment variables prefixed with
    EZTIPS_. For example, EZTIPS_REVIEWS_TOPIC_ID sets reviews_topic_id.
    """

    # Application
    app_id: str = Field(
        default="ez-crypto-tips", description="Application tag written into review envelopes"
    )

    # Network
    network: HederaNetwork = Field(
        default=HederaNetwork.TESTNET, description="Hedera network the wallet signs for"
    )
    mirror_node_url: str | None = Field(
        default=None, description="Override for the mirror node REST base URL"
    )
    http_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for mirror node HTTP requests"
    )

    # Wallet
    walletconnect_project_id: str = Field(
        default="", description="WalletConnect project id used for signer pairing"
    )
    handshake_timeout_seconds: float = Field(
        default=120.0, gt=0, description="How long to wait for the user to approve pairing"
    )

    # Contract
    tip_splitter_contract_id: str | None = Field(
        default=None,
        description="Tip splitter contract id, preferably native form (0.0.xxxxx)",
    )
    contract_gas_limit: int = Field(
        default=300_000, gt=0, description="Fixed gas budget for sendTip calls"
    )
    node_account_ids: list[str] = Field(
        default=["0.0.3", "0.0.4", "0.0.5"],
        description="Deterministic node set every frozen transaction is bound to",
    )
    platform_fee_bps: int = Field(
        default=500, description="Platform fee in basis points (enforced on-chain)"
    )
    confirmation_delay_seconds: float = Field(
        default=3.0, ge=0, description="Settling delay before the single status check"
    )

    # Reviews ledger
    reviews_topic_id: str = Field(
        default="0.0.7415185", description="Consensus topic holding review messages"
    )
    max_message_bytes: int = Field(
        default=6144, gt=0, description="Largest encoded review accepted for submission"
    )
    rating_window: int = Field(
        default=40, gt=0, description="Number of recent ratings used for the average"
    )
    review_fetch_limit: int = Field(
        default=50, gt=0, description="Reviews read from the index per waiter"
    )

    # Secondary index
    redis_url: str | None = Field(
        default=None, description="Redis URL for the review index (memory if unset)"
    )
    redis_password: str | None = Field(default=None, description="Redis password")
    index_key_prefix: str = Field(
        default="eztips:reviews:", description="Key prefix for review index entries"
    )

    @field_validator("platform_fee_bps")
    @classmethod
    def validate_fee_bps(cls, v: int) -> int:
        """Fee must leave the recipient something."""
        if v < 0 or v >= BASIS_POINTS:
            raise ValueError(f"platform_fee_bps must be in [0, {BASIS_POINTS})")
        return v

    @field_validator("walletconnect_project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Warn if the project id is not set but don't fail."""
        if not v:
            warnings.warn(
                "EZTIPS_WALLETCONNECT_PROJECT_ID not set. Wallet pairing will fail "
                "until a project id from cloud.walletconnect.com is configured.",
                stacklevel=2,
            )
        return v

    @field_validator("node_account_ids")
    @classmethod
    def validate_node_ids(cls, v: list[str]) -> list[str]:
        """Frozen transactions need at least one node to be bound to."""
        if not v:
            raise ValueError("node_account_ids must not be empty")
        return v

    @property
    def fee_rate(self) -> Decimal:
        """Platform fee as a fraction (500 bps -> 0.05)."""
        return Decimal(self.platform_fee_bps) / Decimal(BASIS_POINTS)

    def get_mirror_node_url(self) -> str:
        """Get the mirror node base URL for the configured network."""
        if self.mirror_node_url:
            return self.mirror_node_url.rstrip("/")
        return MIRROR_NODE_URLS[self.network]

    def get_explorer_url(self, path: str) -> str:
        """Build a HashScan URL for the configured network."""
        return f"{EXPLORER_BASE_URL}/{self.network.value}/{path.lstrip('/')}"

    model_config = {
        "env_prefix": "EZTIPS_",
        "env_file": ".env",
        "extra": "ignore",
    }


# Singleton instance for global access
_config: TipsConfig | None = None


def get_tips_config() -> TipsConfig:
    """
    Get the global tips configuration instance.

    The instance is created lazily on first access so that environment
    overrides applied at startup are honoured.
    """
    global _config
    if _config is None:
        _config = TipsConfig()
    return _config


def configure_tips(config: TipsConfig | None) -> None:
    """
    Set a custom configuration instance.

    Useful for testing or when configuration is loaded from a non-standard
    source. Passing None resets to lazy environment loading.
    """
    global _config
    _config = config
