"""Storage capabilities.

Durable persistence is provided by the embedding application. The engines
only depend on these interfaces.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class WalletRecord:
    """Stored form of a custodial wallet.

    `secret` is the base58 secret key, sealed with Fernet when a master key
    is configured.
    """

    user_id: str
    address: str
    secret: str = field(repr=False)
    funding_signature: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class TokenRecord:
    """Associated token account held for a user and asset."""

    user_id: str
    asset: Pubkey
    account: Pubkey
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WalletStore(ABC):
    """Custodial wallet records keyed by user id."""

    @abstractmethod
    async def save(self, record: WalletRecord) -> None:
        """Persist a wallet record.

        Raises:
            WalletAlreadyExistsError: If the user already has a wallet
        """
        pass

    @abstractmethod
    async def get(self, user_id: str) -> Optional[WalletRecord]:
        pass

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Remove a wallet record. Returns False if there was none."""
        pass


class TokenRecordStore(ABC):
    """Token account records keyed by (user id, asset)."""

    @abstractmethod
    async def save(self, record: TokenRecord) -> None:
        pass

    @abstractmethod
    async def get(self, user_id: str, asset: Pubkey) -> Optional[TokenRecord]:
        pass


class SwapHistoryStore(ABC):
    """Append-only swap results per user."""

    @abstractmethod
    async def save(self, user_id: str, result) -> None:
        pass

    @abstractmethod
    async def list(self, user_id: str, limit: int = 50) -> list:
        """Most recent results first."""
        pass
