"""Tests for the ledger module."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.providers.async_http import AsyncHTTPProvider
from solders.hash import Hash
from solders.keypair import Keypair
from solders.rpc.requests import GetBalance
from solders.system_program import (
    ID as SYS_PROGRAM_ID,
    CreateAccountParams,
    TransferParams,
    create_account,
    transfer,
)

from splcustody.errors import (
    ConfirmationError,
    LedgerConnectionError,
    LedgerError,
    SigningError,
    SubmissionError,
)
from splcustody.ledger.rpc import SolanaRpcLedgerClient
from splcustody.ledger.transactions import build_transaction, sign_versioned_transaction


def make_client(mock_client, **kwargs) -> SolanaRpcLedgerClient:
    kwargs.setdefault("retry_backoff", 0)
    return SolanaRpcLedgerClient("http://localhost:8899", client=mock_client, **kwargs)


def signed_transfer():
    payer = Keypair()
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
    return build_transaction([ix], payer, [], Hash.new_unique())


def transport_failure(message: str) -> SolanaRpcException:
    """A connection error wrapped the way solana-py's HTTP provider raises it."""
    return SolanaRpcException(
        httpx.ConnectError(message),
        AsyncHTTPProvider.make_request,
        None,
        GetBalance(Keypair().pubkey()),
    )


class TestBuildTransaction:
    """Tests for transaction assembly."""

    def test_signed_by_payer(self):
        tx = signed_transfer()
        assert len(tx.signatures) == 1
        tx.verify()

    def test_duplicate_signers_collapsed(self):
        payer = Keypair()
        ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))

        tx = build_transaction([ix], payer, [payer], Hash.new_unique())

        assert len(tx.signatures) == 1

    def test_missing_signer(self):
        payer = Keypair()
        new_account = Keypair()
        ix = create_account(
            CreateAccountParams(
                from_pubkey=payer.pubkey(),
                to_pubkey=new_account.pubkey(),
                lamports=1_000,
                space=0,
                owner=SYS_PROGRAM_ID,
            )
        )

        with pytest.raises(SigningError):
            build_transaction([ix], payer, [], Hash.new_unique())

    def test_unexpected_signer(self):
        payer = Keypair()
        ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))

        with pytest.raises(SigningError):
            build_transaction([ix], payer, [Keypair()], Hash.new_unique())

    def test_sign_versioned_garbage(self):
        with pytest.raises(SigningError):
            sign_versioned_transaction(b"not a transaction", Keypair())


class TestRpcReads:
    """Tests for read retries and error mapping."""

    @pytest.mark.asyncio
    async def test_get_balance(self):
        mock_client = AsyncMock()
        mock_client.get_balance.return_value = SimpleNamespace(value=42)

        assert await make_client(mock_client).get_balance(Keypair().pubkey()) == 42

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        mock_client = AsyncMock()
        mock_client.get_balance.side_effect = [
            transport_failure("connection reset"),
            SimpleNamespace(value=7),
        ]

        assert await make_client(mock_client).get_balance(Keypair().pubkey()) == 7
        assert mock_client.get_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        mock_client = AsyncMock()
        mock_client.get_balance.side_effect = transport_failure("connection refused")

        with pytest.raises(LedgerConnectionError):
            await make_client(mock_client, max_retries=2).get_balance(Keypair().pubkey())
        assert mock_client.get_balance.await_count == 3

    @pytest.mark.asyncio
    async def test_unwrapped_http_error_retried(self):
        mock_client = AsyncMock()
        mock_client.get_balance.side_effect = [
            httpx.ReadError("connection dropped"),
            SimpleNamespace(value=3),
        ]

        assert await make_client(mock_client, max_retries=1).get_balance(Keypair().pubkey()) == 3
        assert mock_client.get_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_node_rejection_not_retried(self):
        mock_client = AsyncMock()
        mock_client.get_balance.side_effect = RPCException("invalid param")

        with pytest.raises(LedgerError):
            await make_client(mock_client).get_balance(Keypair().pubkey())
        assert mock_client.get_balance.await_count == 1

    @pytest.mark.asyncio
    async def test_read_timeout(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        mock_client = AsyncMock()
        mock_client.get_balance.side_effect = slow

        with pytest.raises(LedgerConnectionError):
            await make_client(mock_client, confirmation_timeout=0.01, max_retries=0).get_balance(
                Keypair().pubkey()
            )

    @pytest.mark.asyncio
    async def test_missing_account(self):
        mock_client = AsyncMock()
        mock_client.get_account_info.return_value = SimpleNamespace(value=None)

        assert await make_client(mock_client).get_account(Keypair().pubkey()) is None

    @pytest.mark.asyncio
    async def test_decimals_cached(self):
        mock_client = AsyncMock()
        mock_client.get_token_supply.return_value = SimpleNamespace(value=SimpleNamespace(decimals=6))
        client = make_client(mock_client)
        mint = Keypair().pubkey()

        assert await client.get_asset_decimals(mint) == 6
        assert await client.get_asset_decimals(mint) == 6
        assert mock_client.get_token_supply.await_count == 1


class TestRpcSubmission:
    """Tests for send_and_confirm."""

    @pytest.mark.asyncio
    async def test_confirmed(self):
        tx = signed_transfer()
        mock_client = AsyncMock()
        mock_client.confirm_transaction.return_value = SimpleNamespace(value=[SimpleNamespace(err=None)])

        signature = await make_client(mock_client).send_and_confirm(tx)

        assert signature == str(tx.signatures[0])

    @pytest.mark.asyncio
    async def test_rejected_submission_not_retried(self):
        mock_client = AsyncMock()
        mock_client.send_transaction.side_effect = RPCException("blockhash not found")

        with pytest.raises(SubmissionError):
            await make_client(mock_client).send_and_confirm(signed_transfer())

        assert mock_client.send_transaction.await_count == 1
        mock_client.confirm_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submission_timeout_carries_signature(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        tx = signed_transfer()
        mock_client = AsyncMock()
        mock_client.send_transaction.side_effect = slow

        with pytest.raises(ConfirmationError) as exc_info:
            await make_client(mock_client, confirmation_timeout=0.01).send_and_confirm(tx)

        assert exc_info.value.signature == str(tx.signatures[0])
        assert mock_client.send_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_unconfirmed(self):
        mock_client = AsyncMock()
        mock_client.confirm_transaction.side_effect = UnconfirmedTxError("not confirmed")

        with pytest.raises(ConfirmationError):
            await make_client(mock_client).send_and_confirm(signed_transfer())

    @pytest.mark.asyncio
    async def test_failed_on_chain(self):
        mock_client = AsyncMock()
        mock_client.confirm_transaction.return_value = SimpleNamespace(
            value=[SimpleNamespace(err="InsufficientFundsForRent")]
        )

        with pytest.raises(ConfirmationError):
            await make_client(mock_client).send_and_confirm(signed_transfer())
