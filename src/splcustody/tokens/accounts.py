"""Token account engine.

Manages associated token accounts (one per owner and mint), reads token
balances and performs checked transfers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.token.state import TokenAccount
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from splcustody.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    TokenAccountNotFoundError,
    TokenTransferError,
)
from splcustody.ledger.base import LedgerClient
from splcustody.ledger.transactions import build_transaction

logger = logging.getLogger(__name__)

TOKEN_ACCOUNT_SIZE = 165

# Mainnet mints with well-known symbols
KNOWN_TOKENS = {
    "So11111111111111111111111111111111111111112": ("SOL", "Wrapped SOL"),
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": ("USDC", "USD Coin"),
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": ("USDT", "Tether USD"),
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": ("JUP", "Jupiter"),
    "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R": ("RAY", "Raydium"),
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": ("BONK", "Bonk"),
    "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3": ("PYTH", "Pyth Network"),
}


@dataclass(frozen=True)
class TokenMetadata:
    mint: Pubkey
    symbol: str
    name: str
    decimals: int
    logo_uri: Optional[str] = None


class TokenAccounts:
    """Associated token accounts, balances and transfers."""

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger

    @staticmethod
    def resolve_account(owner: Pubkey, asset: Pubkey) -> Pubkey:
        """Deterministic associated token account address. No ledger I/O."""
        return get_associated_token_address(owner, asset)

    async def ensure_account(self, payer: Keypair, owner: Pubkey, asset: Pubkey) -> Pubkey:
        """Create the associated account for (owner, asset) if it is absent.

        Args:
            payer: Signs and pays rent for the creation
            owner: Wallet that will own the token account
            asset: Token mint

        Returns:
            Associated account address

        Raises:
            TokenAccountNotFoundError: If the address exists but is not a token account
        """
        account = self.resolve_account(owner, asset)
        existing = await self.ledger.get_account(account)

        if existing is not None:
            if existing.owner != TOKEN_PROGRAM_ID:
                raise TokenAccountNotFoundError(
                    f"Address {account} exists but is owned by {existing.owner}"
                )
            logger.debug(f"Token account {account} already exists")
            return account

        ix = create_associated_token_account(payer=payer.pubkey(), owner=owner, mint=asset)
        latest = await self.ledger.get_latest_blockhash()
        tx = build_transaction([ix], payer, [], latest.blockhash)
        signature = await self.ledger.send_and_confirm(tx, latest.last_valid_block_height)

        logger.info(f"Created token account {account} for {owner} (mint {asset}): {signature}")
        return account

    async def balance(self, account: Pubkey, asset: Optional[Pubkey] = None) -> int:
        """Token balance in base units.

        Raises:
            AccountNotFoundError: If the account does not exist
            TokenAccountNotFoundError: If the account is not a token account
                (or holds a different mint than `asset`)
        """
        info = await self.ledger.get_account(account)
        if info is None:
            raise AccountNotFoundError(f"Token account {account} not found")

        if info.owner != TOKEN_PROGRAM_ID or len(info.data) != TOKEN_ACCOUNT_SIZE:
            raise TokenAccountNotFoundError(f"{account} is not a token account")

        try:
            state = TokenAccount.from_bytes(info.data)
        except Exception as e:
            raise TokenAccountNotFoundError(f"{account} could not be decoded: {e}") from e

        if asset is not None and state.mint != asset:
            raise TokenAccountNotFoundError(f"{account} holds mint {state.mint}, not {asset}")

        return state.amount

    async def _check_transfer(
        self,
        from_account: Pubkey,
        asset: Pubkey,
        amount: int,
        decimals: int,
    ) -> None:
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")

        available = await self.balance(from_account, asset)
        if amount > available:
            raise InsufficientBalanceError(
                f"Insufficient balance in {from_account}: {available} < {amount}",
                available=available,
                requested=amount,
            )

        registered = await self.ledger.get_asset_decimals(asset)
        if registered != decimals:
            raise TokenTransferError(
                f"Mint {asset} has {registered} decimals, transfer specified {decimals}"
            )

    async def transfer(
        self,
        signer: Keypair,
        from_account: Pubkey,
        to_account: Pubkey,
        asset: Pubkey,
        amount: int,
        decimals: int,
    ) -> str:
        """Checked token transfer between two token accounts.

        The balance guard runs before anything is submitted.

        Raises:
            InsufficientBalanceError: If the source holds less than `amount`
            TokenTransferError: If `decimals` does not match the mint
        """
        await self._check_transfer(from_account, asset, amount, decimals)

        ix = transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=from_account,
                mint=asset,
                dest=to_account,
                owner=signer.pubkey(),
                amount=amount,
                decimals=decimals,
            )
        )
        latest = await self.ledger.get_latest_blockhash()
        tx = build_transaction([ix], signer, [], latest.blockhash)
        signature = await self.ledger.send_and_confirm(tx, latest.last_valid_block_height)

        logger.info(f"Transferred {amount} of {asset}: {from_account} -> {to_account} ({signature})")
        return signature

    async def settle_to_external(
        self,
        signer: Keypair,
        destination_owner: Pubkey,
        asset: Pubkey,
        amount: int,
        decimals: int,
    ) -> str:
        """Send tokens from the signer's associated account to any wallet.

        The destination's associated account is created first if needed,
        with the signer paying rent. Transfer checks run before it is
        created, so a rejected settlement leaves the ledger untouched.
        """
        source = self.resolve_account(signer.pubkey(), asset)
        await self._check_transfer(source, asset, amount, decimals)

        destination = await self.ensure_account(signer, destination_owner, asset)
        return await self.transfer(signer, source, destination, asset, amount, decimals)

    async def token_metadata(self, asset: Pubkey) -> TokenMetadata:
        symbol, name = KNOWN_TOKENS.get(str(asset), ("UNKNOWN", "Unknown Token"))
        decimals = await self.ledger.get_asset_decimals(asset)
        return TokenMetadata(mint=asset, symbol=symbol, name=name, decimals=decimals)
