"""Jupiter DEX aggregator integration.

Uses the Jupiter swap API for routes and the price API for quotes.
API docs: https://station.jup.ag/docs/apis/swap-api
"""

import base64
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
from solders.pubkey import Pubkey

from splcustody.errors import AccountNotFoundError, SwapError
from splcustody.ledger.base import LedgerClient
from splcustody.ledger.transactions import sign_versioned_transaction
from splcustody.swap.base import PriceSource, SwapExecutor, SwapRequest, SwapResult
from splcustody.tokens.accounts import TokenAccounts

logger = logging.getLogger(__name__)

JUPITER_API_V6 = "https://quote-api.jup.ag/v6"
JUPITER_PRICE_API = "https://api.jup.ag/price/v2"


def _headers(api_key: Optional[str]) -> dict:
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


class JupiterPriceSource(PriceSource):
    """Prices from the Jupiter price API."""

    def __init__(
        self,
        api_url: str = JUPITER_PRICE_API,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def get_price(self, asset: Pubkey, quote_asset: Pubkey) -> Optional[Decimal]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    self.api_url,
                    headers=_headers(self.api_key),
                    params={"ids": str(asset), "vsToken": str(quote_asset)},
                )
        except httpx.HTTPError as e:
            raise SwapError(f"Jupiter price request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Jupiter price API error: {response.status_code} - {response.text}")
            return None

        entry = (response.json().get("data") or {}).get(str(asset))
        if not entry or entry.get("price") is None:
            logger.debug(f"No Jupiter price for {asset} in {quote_asset}")
            return None

        try:
            return Decimal(str(entry["price"]))
        except InvalidOperation:
            logger.warning(f"Unparseable Jupiter price for {asset}: {entry['price']}")
            return None


class JupiterSwapExecutor(SwapExecutor):
    """Executes swaps through a live Jupiter route.

    The route transaction is signed with the wallet keypair and submitted
    through the ledger client. The realized output is the balance change of
    the wallet's associated account for the destination asset.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        tokens: TokenAccounts,
        api_url: str = JUPITER_API_V6,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.ledger = ledger
        self.tokens = tokens
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "Jupiter"

    async def _balance_or_zero(self, account: Pubkey, asset: Pubkey) -> int:
        try:
            return await self.tokens.balance(account, asset)
        except AccountNotFoundError:
            return 0

    async def _get_route(self, client: httpx.AsyncClient, request: SwapRequest) -> dict:
        slippage_bps = int(request.slippage_tolerance * 10000)
        response = await client.get(
            f"{self.api_url}/quote",
            headers=_headers(self.api_key),
            params={
                "inputMint": str(request.from_asset),
                "outputMint": str(request.to_asset),
                "amount": str(request.amount),
                "slippageBps": str(slippage_bps),
                "swapMode": "ExactIn",
            },
        )
        if response.status_code != 200:
            raise SwapError(f"Jupiter quote error: {response.status_code} - {response.text}")
        return response.json()

    async def _get_swap_transaction(
        self,
        client: httpx.AsyncClient,
        quote: dict,
        request: SwapRequest,
    ) -> dict:
        response = await client.post(
            f"{self.api_url}/swap",
            headers=_headers(self.api_key),
            json={
                "quoteResponse": quote,
                "userPublicKey": str(request.signer.pubkey()),
                # Assets are always held in associated token accounts
                "wrapAndUnwrapSol": False,
                "dynamicComputeUnitLimit": True,
            },
        )
        if response.status_code != 200:
            raise SwapError(f"Jupiter swap error: {response.status_code} - {response.text}")
        return response.json()

    async def execute(self, request: SwapRequest) -> SwapResult:
        destination = self.tokens.resolve_account(request.signer.pubkey(), request.to_asset)
        before = await self._balance_or_zero(destination, request.to_asset)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                quote = await self._get_route(client, request)

                out_amount = int(quote["outAmount"])
                threshold = int(quote.get("otherAmountThreshold", out_amount))
                if out_amount < request.min_to_amount:
                    raise SwapError(
                        f"Jupiter route returns {out_amount}, below minimum {request.min_to_amount}"
                    )

                swap_data = await self._get_swap_transaction(client, quote, request)
        except httpx.HTTPError as e:
            raise SwapError(f"Jupiter request failed: {e}") from e
        except (KeyError, ValueError) as e:
            raise SwapError(f"Malformed Jupiter response: {e}") from e

        swap_tx = swap_data.get("swapTransaction")
        if not swap_tx:
            raise SwapError("No swap transaction returned")

        tx = sign_versioned_transaction(base64.b64decode(swap_tx), request.signer)
        logger.info(
            f"Executing Jupiter swap: {request.amount} {request.from_asset} -> "
            f"~{out_amount} {request.to_asset}"
        )
        signature = await self.ledger.send_and_confirm(tx, swap_data.get("lastValidBlockHeight"))

        after = await self._balance_or_zero(destination, request.to_asset)
        realized = after - before
        logger.info(f"Jupiter swap {signature} realized {realized} (expected {out_amount})")

        return SwapResult(
            from_asset=request.from_asset,
            to_asset=request.to_asset,
            from_amount=request.amount,
            expected_to_amount=out_amount,
            to_amount=realized,
            min_to_amount=min(threshold, out_amount),
            slippage_tolerance=request.slippage_tolerance,
            signature=signature,
            is_simulation=False,
            provider=self.name,
        )
