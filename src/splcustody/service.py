"""Custody service: the operations exposed to the web layer.

Wires the wallet, token and swap engines to storage and serialises every
mutating operation per user.
"""

import logging
from decimal import Decimal
from typing import Optional, Union

from solders.pubkey import Pubkey

from splcustody.config import WRAPPED_SOL_MINT, Settings, get_settings
from splcustody.crypto import KeyMaterialEncryptor, get_encryptor
from splcustody.custody.wallet import CustodialWallet, WalletCustody
from splcustody.errors import (
    CustodyError,
    PartialSwapError,
    WalletAlreadyExistsError,
    WalletNotFoundError,
    WalletPersistenceError,
)
from splcustody.ledger.base import LedgerClient
from splcustody.ledger.rpc import SolanaRpcLedgerClient
from splcustody.storage.base import SwapHistoryStore, TokenRecord, TokenRecordStore, WalletStore
from splcustody.storage.memory import (
    InMemorySwapHistoryStore,
    InMemoryTokenRecordStore,
    InMemoryWalletStore,
)
from splcustody.swap.base import SwapResult
from splcustody.swap.factory import create_orchestrator
from splcustody.swap.orchestrator import SwapOrchestrator
from splcustody.tokens.accounts import TokenAccounts
from splcustody.utils.amounts import to_base_units
from splcustody.utils.locks import CustodyLock, LockTimeoutError, user_lock_key

logger = logging.getLogger(__name__)

UiAmount = Union[Decimal, int, float, str]


class CustodyService:
    """Custodial wallet lifecycle, token accounts, conversions and withdrawals."""

    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        custody: WalletCustody,
        tokens: TokenAccounts,
        swaps: SwapOrchestrator,
        wallets: Optional[WalletStore] = None,
        token_records: Optional[TokenRecordStore] = None,
        swap_history: Optional[SwapHistoryStore] = None,
        encryptor: Optional[KeyMaterialEncryptor] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.settings = settings
        self.ledger = ledger
        self.custody = custody
        self.tokens = tokens
        self.swaps = swaps
        self.wallets = wallets or InMemoryWalletStore()
        self.token_records = token_records or InMemoryTokenRecordStore()
        self.history = swap_history or InMemorySwapHistoryStore()
        self.encryptor = encryptor
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        ledger: Optional[LedgerClient] = None,
    ) -> "CustodyService":
        settings = settings or get_settings()
        ledger = ledger or SolanaRpcLedgerClient.from_settings(settings)
        tokens = TokenAccounts(ledger)
        master_key = settings.master_key.get_secret_value() if settings.master_key else ""

        return cls(
            settings=settings,
            ledger=ledger,
            custody=WalletCustody.from_settings(settings, ledger),
            tokens=tokens,
            swaps=create_orchestrator(settings, ledger, tokens),
            encryptor=get_encryptor(master_key),
        )

    async def close(self) -> None:
        await self.ledger.close()

    def _user_lock(self, user_id: str, operation: str) -> CustodyLock:
        return CustodyLock(user_lock_key(user_id), timeout=self.lock_timeout, operation=operation)

    # ======================
    # Wallets
    # ======================

    async def register_user(self, user_id: str, initial_lamports: Optional[int] = None) -> CustodialWallet:
        """Provision and store a wallet for a new user.

        Raises:
            WalletAlreadyExistsError: If the user already has a wallet
                (checked before any ledger call)
            WalletPersistenceError: If the funded wallet could not be stored;
                its funding is reclaimed first when possible
        """
        async with self._user_lock(user_id, "register"):
            if await self.wallets.get(user_id) is not None:
                raise WalletAlreadyExistsError(f"User {user_id} already has a wallet")

            wallet = await self.custody.provision(user_id, initial_lamports)
            try:
                await self.wallets.save(wallet.to_record(self.encryptor))
            except Exception as e:
                await self._abandon_unsaved(wallet, e)

        logger.info(f"Registered user {user_id} with wallet {wallet.address}")
        return wallet

    async def _abandon_unsaved(self, wallet: CustodialWallet, cause: Exception) -> None:
        logger.error(f"Could not store wallet {wallet.address} for user {wallet.user_id}: {cause}")

        try:
            signature = await self.custody.reclaim(wallet)
        except (CustodyError, LockTimeoutError) as e:
            logger.error(f"Funding of unsaved wallet {wallet.address} could not be reclaimed: {e}")
            raise WalletPersistenceError(
                f"Wallet {wallet.address} was funded but not stored and still holds its funding",
                wallet=wallet,
                cause=cause,
            ) from cause

        raise WalletPersistenceError(
            f"Wallet {wallet.address} was not stored, funding reclaimed in {signature}",
            wallet=wallet,
            reclaim_signature=signature,
            cause=cause,
        ) from cause

    async def get_wallet(self, user_id: str) -> CustodialWallet:
        record = await self.wallets.get(user_id)
        if record is None:
            raise WalletNotFoundError(f"No wallet for user {user_id}")
        return CustodialWallet.from_record(record, self.encryptor)

    async def revoke_wallet(self, user_id: str) -> None:
        """Forget a user's wallet. Funds already on the ledger are not moved."""
        async with self._user_lock(user_id, "revoke"):
            if not await self.wallets.delete(user_id):
                raise WalletNotFoundError(f"No wallet for user {user_id}")
        logger.info(f"Revoked custody of wallet for user {user_id}")

    async def wallet_balance(self, user_id: str) -> int:
        wallet = await self.get_wallet(user_id)
        return await self.custody.balance(wallet.address)

    # ======================
    # Token accounts
    # ======================

    def _asset_or_target(self, asset: Optional[Pubkey]) -> Pubkey:
        return asset if asset is not None else self.settings.target_token_mint_id()

    async def ensure_token_account(self, user_id: str, asset: Optional[Pubkey] = None) -> Pubkey:
        """Make sure the user holds an associated account for `asset`.

        Rent is paid by the custodial signer.
        """
        asset = self._asset_or_target(asset)
        wallet = await self.get_wallet(user_id)

        async with self._user_lock(user_id, "ensure_token_account"):
            async with self.custody.signer_session("ensure_token_account") as payer:
                account = await self.tokens.ensure_account(payer, wallet.address, asset)
            await self.token_records.save(TokenRecord(user_id=user_id, asset=asset, account=account))

        return account

    async def token_balance(self, user_id: str, asset: Optional[Pubkey] = None) -> int:
        asset = self._asset_or_target(asset)
        wallet = await self.get_wallet(user_id)
        return await self.tokens.balance(self.tokens.resolve_account(wallet.address, asset), asset)

    async def airdrop(self, user_id: str, ui_amount: UiAmount, asset: Optional[Pubkey] = None) -> str:
        """Send tokens from the custodial treasury to a user."""
        asset = self._asset_or_target(asset)
        wallet = await self.get_wallet(user_id)
        decimals = await self.ledger.get_asset_decimals(asset)
        amount = to_base_units(ui_amount, decimals)

        async with self._user_lock(user_id, "airdrop"):
            async with self.custody.signer_session("airdrop") as treasury:
                destination = await self.tokens.ensure_account(treasury, wallet.address, asset)
                source = self.tokens.resolve_account(treasury.pubkey(), asset)
                signature = await self.tokens.transfer(
                    treasury, source, destination, asset, amount, decimals
                )
            await self.token_records.save(
                TokenRecord(user_id=user_id, asset=asset, account=destination)
            )

        logger.info(f"Airdropped {ui_amount} of {asset} to user {user_id}: {signature}")
        return signature

    # ======================
    # Conversions
    # ======================

    async def convert_to_target(
        self,
        user_id: str,
        amount: int,
        from_asset: Optional[Pubkey] = None,
    ) -> tuple[SwapResult, SwapResult]:
        """Convert `amount` base units into the target asset via the stable asset.

        Raises:
            PartialSwapError: If the second hop failed; the first hop is
                still recorded in the user's history
        """
        from_asset = from_asset or Pubkey.from_string(WRAPPED_SOL_MINT)
        stable = self.settings.stablecoin_mint()
        target = self.settings.target_token_mint_id()
        wallet = await self.get_wallet(user_id)

        async with self._user_lock(user_id, "convert"):
            try:
                results = await self.swaps.auto_convert(
                    wallet.keypair, from_asset, stable, target, amount
                )
            except PartialSwapError as e:
                for result in e.completed:
                    await self.history.save(user_id, result)
                logger.error(
                    f"User {user_id} conversion incomplete, {e.stranded_amount} of {stable} "
                    f"left in wallet {wallet.address}"
                )
                raise

            for result in results:
                await self.history.save(user_id, result)

        return results

    async def swap_history(self, user_id: str, limit: int = 50) -> list[SwapResult]:
        """Most recent swap results first."""
        return await self.history.list(user_id, limit)

    # ======================
    # Withdrawals
    # ======================

    async def withdraw(
        self,
        user_id: str,
        destination: Pubkey,
        ui_amount: UiAmount,
        asset: Optional[Pubkey] = None,
    ) -> str:
        """Settle tokens from the user's wallet to an external address."""
        asset = self._asset_or_target(asset)
        wallet = await self.get_wallet(user_id)
        decimals = await self.ledger.get_asset_decimals(asset)
        amount = to_base_units(ui_amount, decimals)
        if amount <= 0:
            raise ValueError(f"Withdrawal amount {ui_amount} rounds to zero")

        async with self._user_lock(user_id, "withdraw"):
            signature = await self.tokens.settle_to_external(
                wallet.keypair, destination, asset, amount, decimals
            )

        logger.info(f"User {user_id} withdrew {ui_amount} of {asset} to {destination}: {signature}")
        return signature
