"""In-memory storage for development and tests."""

import asyncio
import logging
from typing import Optional

from solders.pubkey import Pubkey

from splcustody.errors import WalletAlreadyExistsError
from splcustody.storage.base import (
    SwapHistoryStore,
    TokenRecord,
    TokenRecordStore,
    WalletRecord,
    WalletStore,
)

logger = logging.getLogger(__name__)


class InMemoryWalletStore(WalletStore):
    def __init__(self):
        self._records: dict[str, WalletRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: WalletRecord) -> None:
        async with self._lock:
            if record.user_id in self._records:
                raise WalletAlreadyExistsError(f"User {record.user_id} already has a wallet")
            self._records[record.user_id] = record
        logger.debug(f"Stored wallet {record.address} for user {record.user_id}")

    async def get(self, user_id: str) -> Optional[WalletRecord]:
        async with self._lock:
            return self._records.get(user_id)

    async def delete(self, user_id: str) -> bool:
        async with self._lock:
            return self._records.pop(user_id, None) is not None


class InMemoryTokenRecordStore(TokenRecordStore):
    def __init__(self):
        self._records: dict[tuple[str, Pubkey], TokenRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: TokenRecord) -> None:
        async with self._lock:
            self._records[(record.user_id, record.asset)] = record

    async def get(self, user_id: str, asset: Pubkey) -> Optional[TokenRecord]:
        async with self._lock:
            return self._records.get((user_id, asset))


class InMemorySwapHistoryStore(SwapHistoryStore):
    def __init__(self):
        self._history: dict[str, list] = {}
        self._lock = asyncio.Lock()

    async def save(self, user_id: str, result) -> None:
        async with self._lock:
            self._history.setdefault(user_id, []).append(result)

    async def list(self, user_id: str, limit: int = 50) -> list:
        async with self._lock:
            results = self._history.get(user_id, [])
            return list(reversed(results))[:limit]
