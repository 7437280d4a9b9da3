"""Application configuration using pydantic-settings.

All settings are read from SOLANA_-prefixed environment variables (or a
.env file). Settings are immutable once loaded and every malformed field
fails at load time with ConfigurationError.
"""

import logging
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, Mapping, Optional

import base58
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from splcustody.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SOLANA_"

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


class NetworkTag(str, Enum):
    """Solana cluster the service talks to."""

    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET = "mainnet"
    LOCAL = "local"

    @classmethod
    def parse(cls, value: str) -> "NetworkTag":
        """Map a configured network name to a tag.

        Unrecognised names resolve to MAINNET.
        """
        name = (value or "").strip().lower()
        aliases = {
            "mainnet-beta": cls.MAINNET,
            "localhost": cls.LOCAL,
            "localnet": cls.LOCAL,
        }
        if name in aliases:
            return aliases[name]
        try:
            return cls(name)
        except ValueError:
            logger.debug(f"Unknown network '{value}', falling back to mainnet")
            return cls.MAINNET


DEFAULT_RPC_ENDPOINTS: dict[NetworkTag, str] = {
    NetworkTag.DEVNET: "https://api.devnet.solana.com",
    NetworkTag.TESTNET: "https://api.testnet.solana.com",
    NetworkTag.MAINNET: "https://api.mainnet-beta.solana.com",
    NetworkTag.LOCAL: "http://127.0.0.1:8899",
}


def resolve_rpc_url(
    network: str,
    endpoints: Optional[Mapping[NetworkTag, str]] = None,
) -> str:
    """Resolve the RPC endpoint for a network name. No network I/O.

    Args:
        network: Configured network name (devnet, testnet, mainnet, local)
        endpoints: Optional endpoint table overriding the defaults

    Returns:
        Endpoint URL; unknown names get the mainnet endpoint
    """
    table = dict(DEFAULT_RPC_ENDPOINTS)
    if endpoints:
        table.update(endpoints)
    return table[NetworkTag.parse(network)]


def _decode_pubkey(value: str) -> Pubkey:
    raw = base58.b58decode(value.strip())
    if len(raw) != 32:
        raise ValueError(f"address must decode to 32 bytes, got {len(raw)}")
    return Pubkey.from_bytes(raw)


def _decode_keypair(secret: str) -> Keypair:
    raw = base58.b58decode(secret.strip())
    if len(raw) != 64:
        raise ValueError(f"secret key must decode to 64 bytes, got {len(raw)}")
    return Keypair.from_bytes(raw)


def parse_asset_id(value: str) -> Pubkey:
    """Parse a base58 mint or account address.

    Raises:
        ConfigurationError: If the value is not a well-formed address
    """
    if not value:
        raise ConfigurationError("Address is empty")
    try:
        return _decode_pubkey(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid address '{value}': {e}") from e


class Settings(BaseSettings):
    """Network configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ======================
    # Network
    # ======================
    network: str = Field(default="devnet", description="devnet, testnet, mainnet or local")
    rpc_url: str = Field(default="", description="Explicit RPC URL (overrides network lookup)")
    ws_url: str = Field(default="", description="WebSocket endpoint URL")
    devnet_rpc_url: str = Field(default=DEFAULT_RPC_ENDPOINTS[NetworkTag.DEVNET])
    testnet_rpc_url: str = Field(default=DEFAULT_RPC_ENDPOINTS[NetworkTag.TESTNET])
    mainnet_rpc_url: str = Field(default=DEFAULT_RPC_ENDPOINTS[NetworkTag.MAINNET])
    local_rpc_url: str = Field(default=DEFAULT_RPC_ENDPOINTS[NetworkTag.LOCAL])

    # ======================
    # Custodial signer
    # ======================
    system_wallet_private_key: SecretStr = Field(
        description="Base58 64-byte secret key of the custodial system wallet"
    )
    initial_wallet_lamports: int = Field(
        default=10_000_000, gt=0, description="Lamports funded into each new user wallet"
    )
    master_key: Optional[SecretStr] = Field(
        default=None, description="Fernet key used to seal user key material at rest"
    )

    # ======================
    # Assets
    # ======================
    default_stablecoin_mint: str = Field(default=USDC_MINT, description="Stable asset mint")
    target_token_mint: str = Field(default="", description="Target asset mint")

    # ======================
    # Ledger policy
    # ======================
    confirmation_timeout_secs: float = Field(default=30, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_backoff_secs: float = Field(default=1.0, ge=0)

    # ======================
    # Swaps
    # ======================
    use_simulation: bool = Field(default=True, description="Simulate swaps (no ledger I/O)")
    default_slippage: Decimal = Field(default=Decimal("0.01"), ge=0, le=1)
    stable_slippage: Decimal = Field(default=Decimal("0.005"), ge=0, le=1)
    jupiter_api_url: str = Field(default="https://quote-api.jup.ag/v6")
    jupiter_price_api_url: str = Field(default="https://api.jup.ag/price/v2")

    debug: bool = Field(default=False)

    @field_validator("network")
    @classmethod
    def _check_network(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("network must not be empty")
        return value

    @field_validator("system_wallet_private_key")
    @classmethod
    def _check_secret(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("system wallet private key is not set")
        try:
            _decode_keypair(value.get_secret_value())
        except ValueError as e:
            raise ValueError(f"system wallet private key is malformed: {e}") from None
        return value

    @field_validator("default_stablecoin_mint")
    @classmethod
    def _check_stable_mint(cls, value: str) -> str:
        _decode_pubkey(value)
        return value.strip()

    @field_validator("target_token_mint")
    @classmethod
    def _check_target_mint(cls, value: str) -> str:
        if value.strip():
            _decode_pubkey(value)
        return value.strip()

    @property
    def network_tag(self) -> NetworkTag:
        return NetworkTag.parse(self.network)

    @property
    def rpc_endpoints(self) -> dict[NetworkTag, str]:
        return {
            NetworkTag.DEVNET: self.devnet_rpc_url,
            NetworkTag.TESTNET: self.testnet_rpc_url,
            NetworkTag.MAINNET: self.mainnet_rpc_url,
            NetworkTag.LOCAL: self.local_rpc_url,
        }

    @property
    def rpc_endpoint(self) -> str:
        """Effective RPC endpoint."""
        if self.rpc_url:
            return self.rpc_url
        return resolve_rpc_url(self.network, self.rpc_endpoints)

    def system_keypair(self) -> Keypair:
        """Custodial signer keypair."""
        try:
            return _decode_keypair(self.system_wallet_private_key.get_secret_value())
        except ValueError as e:
            raise ConfigurationError(f"System wallet private key is malformed: {e}") from None

    def system_wallet_pubkey(self) -> Pubkey:
        """Custodial signer public address."""
        return self.system_keypair().pubkey()

    def stablecoin_mint(self) -> Pubkey:
        return parse_asset_id(self.default_stablecoin_mint)

    def target_token_mint_id(self) -> Pubkey:
        """Target asset mint.

        Raises:
            ConfigurationError: If no target mint is configured
        """
        if not self.target_token_mint:
            raise ConfigurationError("Target token mint is not set")
        return parse_asset_id(self.target_token_mint)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "network": self.network_tag.value,
            "rpc_endpoint": self.rpc_endpoint,
            "ws_url": self.ws_url or "(not set)",
            "system_wallet": str(self.system_wallet_pubkey()),
            "system_wallet_private_key": "***",
            "master_key": "***" if self.master_key else "(not set)",
            "stablecoin_mint": self.default_stablecoin_mint,
            "target_token_mint": self.target_token_mint or "(not set)",
            "confirmation_timeout_secs": self.confirmation_timeout_secs,
            "max_retries": self.max_retries,
            "swaps": {
                "simulation": self.use_simulation,
                "default_slippage": str(self.default_slippage),
                "stable_slippage": str(self.stable_slippage),
            },
        }


def load_settings(values: Optional[Mapping[str, Any]] = None) -> Settings:
    """Load and validate settings.

    Args:
        values: Optional key/value mapping (keys with or without the
            SOLANA_ prefix). When given, the process environment is not read.

    Raises:
        ConfigurationError: If any field is missing or malformed
    """
    try:
        if values is None:
            return Settings()

        fields = {}
        for key, value in values.items():
            name = key.lower()
            if name.startswith(ENV_PREFIX.lower()):
                name = name[len(ENV_PREFIX):]
            fields[name] = value
        return Settings.model_validate(fields)

    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        # pydantic echoes raw input values, which may include the secret key
        raise ConfigurationError(f"Invalid configuration: {problems}") from None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
