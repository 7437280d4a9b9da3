"""Factory for swap executors and price sources.

Simulated or live backends are chosen once, from settings, at construction.
"""

import logging
from typing import Optional

from splcustody.ledger.base import LedgerClient
from splcustody.swap.base import PriceSource, SwapExecutor
from splcustody.swap.dry_run import SimulatedPriceSource, SimulatedSwapExecutor
from splcustody.swap.jupiter import JupiterPriceSource, JupiterSwapExecutor
from splcustody.swap.orchestrator import SwapOrchestrator
from splcustody.tokens.accounts import TokenAccounts

logger = logging.getLogger(__name__)


def create_swap_executor(settings, ledger: LedgerClient, tokens: TokenAccounts) -> SwapExecutor:
    if settings.use_simulation:
        logger.info("Swap executor: simulated")
        return SimulatedSwapExecutor()

    logger.info(f"Swap executor: Jupiter ({settings.jupiter_api_url})")
    return JupiterSwapExecutor(
        ledger=ledger,
        tokens=tokens,
        api_url=settings.jupiter_api_url,
        timeout=settings.confirmation_timeout_secs,
    )


def create_price_source(settings) -> PriceSource:
    if settings.use_simulation:
        return SimulatedPriceSource(stable_asset=settings.stablecoin_mint())

    return JupiterPriceSource(
        api_url=settings.jupiter_price_api_url,
        timeout=settings.confirmation_timeout_secs,
    )


def create_orchestrator(
    settings,
    ledger: LedgerClient,
    tokens: TokenAccounts,
    price_source: Optional[PriceSource] = None,
) -> SwapOrchestrator:
    return SwapOrchestrator(
        executor=create_swap_executor(settings, ledger, tokens),
        quote_asset=settings.stablecoin_mint(),
        price_source=price_source or create_price_source(settings),
        default_slippage=settings.default_slippage,
        stable_slippage=settings.stable_slippage,
    )
