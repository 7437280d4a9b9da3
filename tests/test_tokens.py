"""Tests for the token account engine."""

import pytest
from solders.keypair import Keypair
from solders.system_program import ID as SYS_PROGRAM_ID
from spl.token.constants import TOKEN_PROGRAM_ID

from splcustody.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    TokenAccountNotFoundError,
    TokenTransferError,
)
from splcustody.ledger.base import AccountInfo
from splcustody.tokens.accounts import TokenAccounts
from tests.fakes import STABLE_MINT, TARGET_MINT, TOKEN_ACCOUNT_RENT


@pytest.fixture
def funded_wallet(ledger):
    """A wallet with SOL for fees and 1_000 stable units in its associated account."""
    keypair = Keypair()
    ledger.fund(keypair.pubkey(), 100_000_000)
    account = TokenAccounts.resolve_account(keypair.pubkey(), STABLE_MINT)
    ledger.add_token_account(account, STABLE_MINT, keypair.pubkey(), 1_000)
    return keypair


class TestResolveAccount:
    """Tests for associated account derivation."""

    def test_deterministic(self):
        owner = Keypair().pubkey()
        assert TokenAccounts.resolve_account(owner, STABLE_MINT) == TokenAccounts.resolve_account(
            owner, STABLE_MINT
        )

    def test_differs_per_mint_and_owner(self):
        owner = Keypair().pubkey()
        other = Keypair().pubkey()

        assert TokenAccounts.resolve_account(owner, STABLE_MINT) != TokenAccounts.resolve_account(
            owner, TARGET_MINT
        )
        assert TokenAccounts.resolve_account(owner, STABLE_MINT) != TokenAccounts.resolve_account(
            other, STABLE_MINT
        )

    def test_no_ledger_io(self, tokens, ledger):
        tokens.resolve_account(Keypair().pubkey(), STABLE_MINT)
        assert ledger.calls == []


class TestEnsureAccount:
    """Tests for ensure_account."""

    @pytest.mark.asyncio
    async def test_creates_missing_account(self, tokens, ledger, system_keypair):
        owner = Keypair().pubkey()

        account = await tokens.ensure_account(system_keypair, owner, STABLE_MINT)

        assert account == tokens.resolve_account(owner, STABLE_MINT)
        assert ledger.accounts[account].owner == TOKEN_PROGRAM_ID
        assert ledger.token_amount(account) == 0
        assert len(ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_idempotent(self, tokens, ledger, system_keypair):
        owner = Keypair().pubkey()

        first = await tokens.ensure_account(system_keypair, owner, STABLE_MINT)
        second = await tokens.ensure_account(system_keypair, owner, STABLE_MINT)

        assert first == second
        assert len(ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_payer_pays_rent(self, tokens, ledger, system_keypair):
        before = ledger.accounts[system_keypair.pubkey()].lamports
        await tokens.ensure_account(system_keypair, Keypair().pubkey(), STABLE_MINT)
        assert ledger.accounts[system_keypair.pubkey()].lamports == before - TOKEN_ACCOUNT_RENT

    @pytest.mark.asyncio
    async def test_existing_address_with_wrong_owner(self, tokens, ledger, system_keypair):
        owner = Keypair().pubkey()
        account = tokens.resolve_account(owner, STABLE_MINT)
        ledger.accounts[account] = AccountInfo(account, 1_000, SYS_PROGRAM_ID, b"")

        with pytest.raises(TokenAccountNotFoundError):
            await tokens.ensure_account(system_keypair, owner, STABLE_MINT)
        assert ledger.submitted == []


class TestBalance:
    """Tests for token balance queries."""

    @pytest.mark.asyncio
    async def test_balance(self, tokens, funded_wallet):
        account = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        assert await tokens.balance(account) == 1_000
        assert await tokens.balance(account, STABLE_MINT) == 1_000

    @pytest.mark.asyncio
    async def test_missing_account(self, tokens):
        with pytest.raises(AccountNotFoundError):
            await tokens.balance(Keypair().pubkey())

    @pytest.mark.asyncio
    async def test_not_a_token_account(self, tokens, funded_wallet):
        with pytest.raises(TokenAccountNotFoundError):
            await tokens.balance(funded_wallet.pubkey())

    @pytest.mark.asyncio
    async def test_wrong_mint(self, tokens, funded_wallet):
        account = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        with pytest.raises(TokenAccountNotFoundError):
            await tokens.balance(account, TARGET_MINT)


class TestTransfer:
    """Tests for checked token transfers."""

    @pytest.mark.asyncio
    async def test_transfer_entire_balance(self, tokens, ledger, funded_wallet, system_keypair):
        source = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        destination = await tokens.ensure_account(system_keypair, Keypair().pubkey(), STABLE_MINT)

        signature = await tokens.transfer(funded_wallet, source, destination, STABLE_MINT, 1_000, 6)

        assert ledger.token_amount(source) == 0
        assert ledger.token_amount(destination) == 1_000
        assert signature == str(ledger.submitted[-1].signatures[0])

    @pytest.mark.asyncio
    async def test_overdraw_rejected_before_submission(
        self, tokens, ledger, funded_wallet, system_keypair
    ):
        source = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        destination = await tokens.ensure_account(system_keypair, Keypair().pubkey(), STABLE_MINT)
        submitted = len(ledger.submitted)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await tokens.transfer(funded_wallet, source, destination, STABLE_MINT, 1_001, 6)

        assert exc_info.value.available == 1_000
        assert exc_info.value.requested == 1_001
        assert len(ledger.submitted) == submitted
        assert ledger.token_amount(source) == 1_000

    @pytest.mark.asyncio
    async def test_decimals_mismatch(self, tokens, ledger, funded_wallet, system_keypair):
        source = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        destination = await tokens.ensure_account(system_keypair, Keypair().pubkey(), STABLE_MINT)
        submitted = len(ledger.submitted)

        with pytest.raises(TokenTransferError):
            await tokens.transfer(funded_wallet, source, destination, STABLE_MINT, 10, 9)
        assert len(ledger.submitted) == submitted

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, tokens, funded_wallet):
        source = tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)
        with pytest.raises(ValueError):
            await tokens.transfer(funded_wallet, source, source, STABLE_MINT, 0, 6)


class TestSettleToExternal:
    """Tests for settlement to external owners."""

    @pytest.mark.asyncio
    async def test_creates_destination_and_transfers(self, tokens, ledger, funded_wallet):
        external = Keypair().pubkey()

        await tokens.settle_to_external(funded_wallet, external, STABLE_MINT, 400, 6)

        destination = tokens.resolve_account(external, STABLE_MINT)
        assert ledger.token_amount(destination) == 400
        assert ledger.token_amount(tokens.resolve_account(funded_wallet.pubkey(), STABLE_MINT)) == 600
        # account creation + transfer
        assert len(ledger.submitted) == 2

    @pytest.mark.asyncio
    async def test_existing_destination(self, tokens, ledger, funded_wallet):
        external = Keypair().pubkey()
        destination = tokens.resolve_account(external, STABLE_MINT)
        ledger.add_token_account(destination, STABLE_MINT, external, 5)

        await tokens.settle_to_external(funded_wallet, external, STABLE_MINT, 1_000, 6)

        assert ledger.token_amount(destination) == 1_005
        assert len(ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_overdraw_creates_nothing(self, tokens, ledger, funded_wallet):
        external = Keypair().pubkey()

        with pytest.raises(InsufficientBalanceError):
            await tokens.settle_to_external(funded_wallet, external, STABLE_MINT, 5_000, 6)

        assert ledger.submitted == []
        assert tokens.resolve_account(external, STABLE_MINT) not in ledger.accounts

    @pytest.mark.asyncio
    async def test_decimals_mismatch_creates_nothing(self, tokens, ledger, funded_wallet):
        external = Keypair().pubkey()
        lamports = ledger.accounts[funded_wallet.pubkey()].lamports

        with pytest.raises(TokenTransferError):
            await tokens.settle_to_external(funded_wallet, external, STABLE_MINT, 400, 9)

        assert ledger.submitted == []
        assert tokens.resolve_account(external, STABLE_MINT) not in ledger.accounts
        assert ledger.accounts[funded_wallet.pubkey()].lamports == lamports

    @pytest.mark.asyncio
    async def test_zero_amount_creates_nothing(self, tokens, ledger, funded_wallet):
        external = Keypair().pubkey()

        with pytest.raises(ValueError):
            await tokens.settle_to_external(funded_wallet, external, STABLE_MINT, 0, 6)

        assert ledger.submitted == []
        assert tokens.resolve_account(external, STABLE_MINT) not in ledger.accounts


class TestTokenMetadata:
    @pytest.mark.asyncio
    async def test_known_mint(self, tokens):
        metadata = await tokens.token_metadata(STABLE_MINT)
        assert metadata.symbol == "USDC"
        assert metadata.decimals == 6

    @pytest.mark.asyncio
    async def test_unknown_mint(self, tokens):
        metadata = await tokens.token_metadata(TARGET_MINT)
        assert metadata.symbol == "UNKNOWN"
        assert metadata.decimals == 9
        assert metadata.logo_uri is None
