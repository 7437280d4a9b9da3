"""Swap orchestration: pricing, slippage bounds and two-hop conversion."""

import asyncio
import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from splcustody.errors import PartialSwapError, SwapError
from splcustody.swap.base import PriceSource, SwapExecutor, SwapRequest, SwapResult
from splcustody.swap.dry_run import SimulatedPriceSource

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE = Decimal("0.01")
STABLE_SLIPPAGE = Decimal("0.005")


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def _as_tolerance(value: Union[Decimal, float, str]) -> Decimal:
    tolerance = value if isinstance(value, Decimal) else Decimal(str(value))
    if tolerance < 0 or tolerance > 1:
        raise ValueError(f"Slippage tolerance must be within [0, 1], got {tolerance}")
    return tolerance


class SwapOrchestrator:
    """Prices swaps and routes them through a SwapExecutor.

    All prices are expressed in `quote_asset` (the stable asset). Prices are
    cached per (asset, quote asset) pair until clear_price_cache() is called.
    """

    def __init__(
        self,
        executor: SwapExecutor,
        quote_asset: Pubkey,
        price_source: Optional[PriceSource] = None,
        default_slippage: Decimal = DEFAULT_SLIPPAGE,
        stable_slippage: Decimal = STABLE_SLIPPAGE,
    ):
        self.executor = executor
        self.quote_asset = quote_asset
        self.price_source = price_source or SimulatedPriceSource(stable_asset=quote_asset)
        self.default_slippage = _as_tolerance(default_slippage)
        self.stable_slippage = _as_tolerance(stable_slippage)
        self._price_cache: dict[tuple[Pubkey, Pubkey], Decimal] = {}
        self._cache_lock = asyncio.Lock()

    @property
    def is_simulation(self) -> bool:
        return self.executor.is_simulation

    async def quote(self, asset: Pubkey, quote_asset: Optional[Pubkey] = None) -> Decimal:
        """Price of `asset` in `quote_asset` (defaults to the stable asset).

        Raises:
            SwapError: If no positive price is available
        """
        quote_asset = quote_asset or self.quote_asset
        key = (asset, quote_asset)

        async with self._cache_lock:
            cached = self._price_cache.get(key)
            if cached is not None:
                return cached

            price = await self.price_source.get_price(asset, quote_asset)
            if price is None or price <= 0:
                raise SwapError(f"No price available for {asset} in {quote_asset}")

            self._price_cache[key] = price
            logger.debug(f"Cached price {asset}/{quote_asset} = {price}")
            return price

    def clear_price_cache(self) -> None:
        self._price_cache.clear()

    async def swap(
        self,
        signer: Keypair,
        from_asset: Pubkey,
        to_asset: Pubkey,
        amount: int,
        slippage_tolerance: Optional[Union[Decimal, float, str]] = None,
    ) -> SwapResult:
        """Price and execute a single swap.

        expected = floor(amount * price(from) / price(to))
        minimum = floor(expected * (1 - tolerance))
        """
        tolerance = self.default_slippage if slippage_tolerance is None else _as_tolerance(
            slippage_tolerance
        )
        if amount <= 0:
            raise ValueError(f"Swap amount must be positive, got {amount}")

        from_price = await self.quote(from_asset)
        to_price = await self.quote(to_asset)

        expected = _floor(Decimal(amount) * from_price / to_price)
        minimum = _floor(Decimal(expected) * (Decimal(1) - tolerance))

        logger.info(
            f"Swap {amount} {from_asset} -> {to_asset}: expected {expected}, "
            f"minimum {minimum} (tolerance {tolerance}, via {self.executor.name})"
        )

        return await self.executor.execute(
            SwapRequest(
                signer=signer,
                from_asset=from_asset,
                to_asset=to_asset,
                amount=amount,
                expected_to_amount=expected,
                min_to_amount=minimum,
                slippage_tolerance=tolerance,
            )
        )

    async def buy_stable(
        self,
        signer: Keypair,
        from_asset: Pubkey,
        stable_asset: Pubkey,
        amount: int,
    ) -> SwapResult:
        return await self.swap(signer, from_asset, stable_asset, amount, self.stable_slippage)

    async def buy_target_with_stable(
        self,
        signer: Keypair,
        stable_asset: Pubkey,
        target_asset: Pubkey,
        stable_amount: int,
    ) -> SwapResult:
        return await self.swap(signer, stable_asset, target_asset, stable_amount, self.default_slippage)

    async def auto_convert(
        self,
        signer: Keypair,
        from_asset: Pubkey,
        stable_asset: Pubkey,
        target_asset: Pubkey,
        amount: int,
    ) -> tuple[SwapResult, SwapResult]:
        """Convert `from_asset` into `target_asset` through the stable asset.

        Hop 2 spends exactly what hop 1 realized. A hop 1 failure propagates
        unchanged and hop 2 is not attempted.

        Raises:
            PartialSwapError: If hop 2 fails after hop 1 settled
        """
        first = await self.buy_stable(signer, from_asset, stable_asset, amount)

        try:
            second = await self.buy_target_with_stable(
                signer, stable_asset, target_asset, first.to_amount
            )
        except Exception as e:
            logger.error(
                f"Second hop failed after first hop {first.signature} "
                f"left {first.to_amount} of {stable_asset}: {e}"
            )
            raise PartialSwapError(
                f"Conversion stopped after first hop: {e}", completed=[first], cause=e
            ) from e

        return first, second
