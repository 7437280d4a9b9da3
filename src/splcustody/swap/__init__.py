"""Swap orchestration.

Executors:
- SimulatedSwapExecutor: fills at the expected amount, no ledger I/O
- JupiterSwapExecutor: live Jupiter route signed by the custodial wallet
"""

from splcustody.swap.base import (
    SIMULATED_SIGNATURE,
    PriceSource,
    SwapExecutor,
    SwapRequest,
    SwapResult,
)
from splcustody.swap.dry_run import SimulatedPriceSource, SimulatedSwapExecutor
from splcustody.swap.factory import create_orchestrator, create_price_source, create_swap_executor
from splcustody.swap.jupiter import JupiterPriceSource, JupiterSwapExecutor
from splcustody.swap.orchestrator import SwapOrchestrator

__all__ = [
    "SIMULATED_SIGNATURE",
    "SwapResult",
    "SwapRequest",
    "SwapExecutor",
    "PriceSource",
    "SimulatedPriceSource",
    "SimulatedSwapExecutor",
    "JupiterPriceSource",
    "JupiterSwapExecutor",
    "SwapOrchestrator",
    "create_swap_executor",
    "create_price_source",
    "create_orchestrator",
]
