"""Ledger client capability.

Every engine talks to the chain through a LedgerClient so that the RPC
transport can be swapped (or faked in tests) without touching custody logic.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from splcustody.errors import AccountNotFoundError

logger = logging.getLogger(__name__)

SignedTransaction = Union[Transaction, VersionedTransaction]


@dataclass
class AccountInfo:
    """Raw ledger account as returned by the RPC node."""

    address: Pubkey
    lamports: int
    owner: Pubkey
    data: bytes
    executable: bool = False


@dataclass
class LatestBlockhash:
    blockhash: Hash
    last_valid_block_height: int


class LedgerClient(ABC):
    """Abstract async client for a Solana RPC node.

    Reads may be retried by the implementation. Submissions are never
    resubmitted once they have left the process.
    """

    @abstractmethod
    async def get_balance(self, address: Pubkey) -> int:
        """Get native balance in lamports (0 for unknown addresses)."""
        pass

    @abstractmethod
    async def get_account(self, address: Pubkey) -> Optional[AccountInfo]:
        """Get account info, or None if the address does not exist."""
        pass

    async def get_account_data(self, address: Pubkey) -> bytes:
        """Get raw account data.

        Raises:
            AccountNotFoundError: If the address does not exist
        """
        account = await self.get_account(address)
        if account is None:
            raise AccountNotFoundError(f"Account {address} not found")
        return account.data

    @abstractmethod
    async def get_latest_blockhash(self) -> LatestBlockhash:
        pass

    @abstractmethod
    async def get_asset_decimals(self, mint: Pubkey) -> int:
        """Get the decimal precision registered for a mint."""
        pass

    @abstractmethod
    async def send_and_confirm(
        self,
        transaction: SignedTransaction,
        last_valid_block_height: Optional[int] = None,
    ) -> str:
        """Submit a signed transaction and wait for confirmation.

        Returns:
            Transaction signature (base58)

        Raises:
            SubmissionError: Rejected before confirmation
            ConfirmationError: Not confirmed in time or failed on-chain
            LedgerConnectionError: Node unreachable
        """
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
