"""Storage capabilities and in-memory implementations."""

from splcustody.storage.base import (
    SwapHistoryStore,
    TokenRecord,
    TokenRecordStore,
    WalletRecord,
    WalletStore,
)
from splcustody.storage.memory import (
    InMemorySwapHistoryStore,
    InMemoryTokenRecordStore,
    InMemoryWalletStore,
)

__all__ = [
    "WalletRecord",
    "TokenRecord",
    "WalletStore",
    "TokenRecordStore",
    "SwapHistoryStore",
    "InMemoryWalletStore",
    "InMemoryTokenRecordStore",
    "InMemorySwapHistoryStore",
]
