"""Simulated pricing and swap execution (no ledger I/O)."""

import logging
from decimal import Decimal
from typing import Optional

from solders.pubkey import Pubkey

from splcustody.config import USDC_MINT
from splcustody.swap.base import (
    SIMULATED_SIGNATURE,
    PriceSource,
    SwapExecutor,
    SwapRequest,
    SwapResult,
)

logger = logging.getLogger(__name__)

# Simulated prices in USD, keyed by mainnet mint.
# For demonstration only, not for real trading.
SIMULATED_PRICES: dict[str, Decimal] = {
    "So11111111111111111111111111111111111111112": Decimal("225.00"),  # SOL
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": Decimal("1.00"),  # USDC
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": Decimal("1.00"),  # USDT
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": Decimal("1.10"),  # JUP
    "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R": Decimal("5.20"),  # RAY
    "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3": Decimal("0.45"),  # PYTH
}

# Price for unlisted assets quoted against the stable asset
DEFAULT_STABLE_PRICE = Decimal("1.5")


class SimulatedPriceSource(PriceSource):
    """Static price table quoted against a stable asset.

    Unlisted assets are priced at DEFAULT_STABLE_PRICE against the stable
    asset and at 1 against anything else.
    """

    def __init__(
        self,
        stable_asset: Optional[Pubkey] = None,
        prices: Optional[dict[Pubkey, Decimal]] = None,
        default_price: Decimal = DEFAULT_STABLE_PRICE,
    ):
        self.stable_asset = stable_asset or Pubkey.from_string(USDC_MINT)
        self.default_price = default_price
        if prices is None:
            prices = {Pubkey.from_string(mint): price for mint, price in SIMULATED_PRICES.items()}
        self._prices = dict(prices)

    def set_price(self, asset: Pubkey, price: Decimal) -> None:
        self._prices[asset] = price

    async def get_price(self, asset: Pubkey, quote_asset: Pubkey) -> Optional[Decimal]:
        if asset == quote_asset:
            return Decimal("1")
        if quote_asset != self.stable_asset:
            return Decimal("1.0")
        return self._prices.get(asset, self.default_price)


class SimulatedSwapExecutor(SwapExecutor):
    """Fills every swap at the expected amount without touching the ledger."""

    @property
    def name(self) -> str:
        return "simulated"

    @property
    def is_simulation(self) -> bool:
        return True

    async def execute(self, request: SwapRequest) -> SwapResult:
        logger.info(
            f"[DRY RUN] Swap {request.amount} {request.from_asset} -> "
            f"{request.expected_to_amount} {request.to_asset}"
        )
        return SwapResult(
            from_asset=request.from_asset,
            to_asset=request.to_asset,
            from_amount=request.amount,
            expected_to_amount=request.expected_to_amount,
            to_amount=request.expected_to_amount,
            min_to_amount=request.min_to_amount,
            slippage_tolerance=request.slippage_tolerance,
            signature=SIMULATED_SIGNATURE,
            is_simulation=True,
            provider=self.name,
        )
