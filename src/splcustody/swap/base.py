"""Swap interfaces: results, execution backends and price sources."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)

SIMULATED_SIGNATURE = "SIMULATED_SWAP_SIGNATURE"


@dataclass(frozen=True)
class SwapResult:
    """Outcome of one swap hop. Amounts are in base units."""

    from_asset: Pubkey
    to_asset: Pubkey
    from_amount: int
    expected_to_amount: int
    to_amount: int
    min_to_amount: int
    slippage_tolerance: Decimal
    signature: str
    is_simulation: bool = False
    provider: str = "simulated"
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.min_to_amount > self.expected_to_amount:
            raise ValueError(
                f"min_to_amount {self.min_to_amount} exceeds "
                f"expected_to_amount {self.expected_to_amount}"
            )

    @property
    def realized_slippage(self) -> Decimal:
        """Fraction of the expected output that was not received."""
        if self.expected_to_amount == 0:
            return Decimal("0")
        return Decimal(self.expected_to_amount - self.to_amount) / Decimal(self.expected_to_amount)

    def to_dict(self) -> dict:
        return {
            "from_asset": str(self.from_asset),
            "to_asset": str(self.to_asset),
            "from_amount": self.from_amount,
            "expected_to_amount": self.expected_to_amount,
            "to_amount": self.to_amount,
            "min_to_amount": self.min_to_amount,
            "slippage_tolerance": str(self.slippage_tolerance),
            "signature": self.signature,
            "is_simulation": self.is_simulation,
            "provider": self.provider,
        }


@dataclass
class SwapRequest:
    """A priced swap ready for execution."""

    signer: Keypair
    from_asset: Pubkey
    to_asset: Pubkey
    amount: int
    expected_to_amount: int
    min_to_amount: int
    slippage_tolerance: Decimal


class SwapExecutor(ABC):
    """Executes a priced swap and reports the realized output."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    def is_simulation(self) -> bool:
        return False

    @abstractmethod
    async def execute(self, request: SwapRequest) -> SwapResult:
        """Execute a swap.

        Raises:
            SwapError: If the route cannot be obtained or executed
        """
        pass


class PriceSource(ABC):
    """Looks up the price of an asset in terms of a quote asset."""

    @abstractmethod
    async def get_price(self, asset: Pubkey, quote_asset: Pubkey) -> Optional[Decimal]:
        """Price of one unit of `asset` in `quote_asset`, or None if unknown."""
        pass
