"""Ledger client backed by solana-py's async RPC client."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey

from splcustody.errors import (
    ConfirmationError,
    LedgerConnectionError,
    LedgerError,
    SubmissionError,
)
from splcustody.ledger.base import AccountInfo, LatestBlockhash, LedgerClient, SignedTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SolanaRpcLedgerClient(LedgerClient):
    """LedgerClient over JSON-RPC.

    Every call is bounded by the confirmation timeout. Reads retry
    LedgerConnectionError up to max_retries times with linear backoff.
    """

    def __init__(
        self,
        endpoint: str,
        confirmation_timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        client: Optional[AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.confirmation_timeout = confirmation_timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._client = client or AsyncClient(endpoint, commitment=Confirmed)
        self._decimals: dict[Pubkey, int] = {}

    @classmethod
    def from_settings(cls, settings) -> "SolanaRpcLedgerClient":
        return cls(
            endpoint=settings.rpc_endpoint,
            confirmation_timeout=settings.confirmation_timeout_secs,
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff_secs,
        )

    async def _read(self, name: str, call: Callable[[], Awaitable[T]]) -> T:
        last_error: Optional[LedgerConnectionError] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await asyncio.wait_for(call(), timeout=self.confirmation_timeout)
            except asyncio.TimeoutError:
                last_error = LedgerConnectionError(
                    f"{name} timed out after {self.confirmation_timeout}s"
                )
            except (SolanaRpcException, httpx.HTTPError, OSError) as e:
                last_error = LedgerConnectionError(f"{name} failed: {e}")
            except RPCException as e:
                raise LedgerError(f"{name} rejected by node: {e}") from e

            if attempt < self.max_retries:
                delay = self.retry_backoff * (attempt + 1)
                logger.warning(
                    f"{name} attempt {attempt + 1}/{self.max_retries + 1} failed, "
                    f"retrying in {delay}s: {last_error}"
                )
                await asyncio.sleep(delay)

        logger.error(f"{name} failed after {self.max_retries + 1} attempts: {last_error}")
        raise last_error

    async def get_balance(self, address: Pubkey) -> int:
        resp = await self._read("get_balance", lambda: self._client.get_balance(address))
        return resp.value

    async def get_account(self, address: Pubkey) -> Optional[AccountInfo]:
        resp = await self._read(
            "get_account_info", lambda: self._client.get_account_info(address)
        )
        account = resp.value
        if account is None:
            return None
        return AccountInfo(
            address=address,
            lamports=account.lamports,
            owner=account.owner,
            data=bytes(account.data),
            executable=account.executable,
        )

    async def get_latest_blockhash(self) -> LatestBlockhash:
        resp = await self._read("get_latest_blockhash", self._client.get_latest_blockhash)
        return LatestBlockhash(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def get_asset_decimals(self, mint: Pubkey) -> int:
        if mint not in self._decimals:
            resp = await self._read("get_token_supply", lambda: self._client.get_token_supply(mint))
            self._decimals[mint] = resp.value.decimals
        return self._decimals[mint]

    async def send_and_confirm(
        self,
        transaction: SignedTransaction,
        last_valid_block_height: Optional[int] = None,
    ) -> str:
        signature = transaction.signatures[0]
        opts = TxOpts(skip_confirmation=True, preflight_commitment=Confirmed)

        try:
            await asyncio.wait_for(
                self._client.send_transaction(transaction, opts=opts),
                timeout=self.confirmation_timeout,
            )
        except asyncio.TimeoutError:
            # The node may have accepted it; the caller has to re-query.
            raise ConfirmationError(
                f"Submission of {signature} timed out after {self.confirmation_timeout}s",
                signature=str(signature),
            ) from None
        except RPCException as e:
            raise SubmissionError(f"Transaction rejected: {e}") from e
        except (SolanaRpcException, httpx.HTTPError, OSError) as e:
            raise LedgerConnectionError(f"send_transaction failed: {e}") from e

        logger.info(f"Submitted transaction {signature}")

        try:
            resp = await asyncio.wait_for(
                self._client.confirm_transaction(
                    signature,
                    Confirmed,
                    last_valid_block_height=last_valid_block_height,
                ),
                timeout=self.confirmation_timeout,
            )
        except asyncio.TimeoutError:
            raise ConfirmationError(
                f"Transaction {signature} not confirmed within {self.confirmation_timeout}s",
                signature=str(signature),
            ) from None
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            raise ConfirmationError(
                f"Transaction {signature} was not confirmed: {e}",
                signature=str(signature),
            ) from e
        except (SolanaRpcException, httpx.HTTPError, OSError) as e:
            raise ConfirmationError(
                f"Lost contact with node while confirming {signature}: {e}",
                signature=str(signature),
            ) from e

        statuses = resp.value
        if statuses and statuses[0] is not None and statuses[0].err is not None:
            raise ConfirmationError(
                f"Transaction {signature} failed on-chain: {statuses[0].err}",
                signature=str(signature),
            )

        logger.info(f"Confirmed transaction {signature}")
        return str(signature)

    async def close(self) -> None:
        await self._client.close()
