"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio
from solders.keypair import Keypair

# Set test environment
os.environ["SOLANA_NETWORK"] = "devnet"
os.environ["SOLANA_USE_SIMULATION"] = "true"
os.environ.setdefault("SOLANA_SYSTEM_WALLET_PRIVATE_KEY", str(Keypair()))

from splcustody.config import get_settings, load_settings
from splcustody.custody.wallet import WalletCustody
from splcustody.service import CustodyService
from splcustody.swap.dry_run import SimulatedSwapExecutor
from splcustody.swap.orchestrator import SwapOrchestrator
from splcustody.tokens.accounts import TokenAccounts
from splcustody.utils.locks import clear_locks
from tests.fakes import (
    LAMPORTS_PER_SOL,
    SOURCE_MINT,
    STABLE_MINT,
    TARGET_MINT,
    FakeLedgerClient,
)


@pytest.fixture(autouse=True)
def reset_state():
    """Clear locks and cached settings before each test."""
    clear_locks()
    get_settings.cache_clear()
    yield
    clear_locks()


@pytest.fixture
def system_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def ledger(system_keypair: Keypair) -> FakeLedgerClient:
    fake = FakeLedgerClient()
    fake.fund(system_keypair.pubkey(), 10 * LAMPORTS_PER_SOL)
    fake.add_mint(STABLE_MINT, 6)
    fake.add_mint(SOURCE_MINT, 9)
    fake.add_mint(TARGET_MINT, 9)
    return fake


@pytest.fixture
def settings(system_keypair: Keypair):
    return load_settings(
        {
            "SOLANA_SYSTEM_WALLET_PRIVATE_KEY": str(system_keypair),
            "SOLANA_TARGET_TOKEN_MINT": str(TARGET_MINT),
            "SOLANA_USE_SIMULATION": "true",
        }
    )


@pytest.fixture
def custody(ledger: FakeLedgerClient, system_keypair: Keypair) -> WalletCustody:
    return WalletCustody(ledger, system_keypair, default_funding_lamports=10_000_000)


@pytest.fixture
def tokens(ledger: FakeLedgerClient) -> TokenAccounts:
    return TokenAccounts(ledger)


@pytest.fixture
def orchestrator() -> SwapOrchestrator:
    return SwapOrchestrator(SimulatedSwapExecutor(), quote_asset=STABLE_MINT)


@pytest_asyncio.fixture
async def service(settings, ledger, custody, tokens, orchestrator) -> CustodyService:
    svc = CustodyService(
        settings=settings,
        ledger=ledger,
        custody=custody,
        tokens=tokens,
        swaps=orchestrator,
    )
    yield svc
    await svc.close()
