"""Wallet custody engine.

Creates and holds keypairs on behalf of users. New wallets are funded by
the custodial system wallet, which pays for and co-signs the account
creation.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import (
    ID as SYS_PROGRAM_ID,
    CreateAccountParams,
    TransferParams,
    create_account,
    transfer,
)

from splcustody.crypto import KeyMaterialEncryptor, seal_secret, unseal_secret
from splcustody.errors import AccountNotFoundError, SigningError
from splcustody.ledger.base import LedgerClient
from splcustody.ledger.transactions import build_transaction
from splcustody.storage.base import WalletRecord
from splcustody.utils.locks import custody_lock

logger = logging.getLogger(__name__)

SIGNER_LOCK_KEY = "custodial-signer"


@dataclass(frozen=True)
class CustodialWallet:
    """A keypair held on behalf of a user."""

    user_id: str
    keypair: Keypair = field(repr=False, compare=False)
    funding_signature: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def address(self) -> Pubkey:
        return self.keypair.pubkey()

    def to_record(self, encryptor: Optional[KeyMaterialEncryptor] = None) -> WalletRecord:
        return WalletRecord(
            user_id=self.user_id,
            address=str(self.address),
            secret=seal_secret(str(self.keypair), encryptor),
            funding_signature=self.funding_signature,
            created_at=self.created_at,
        )

    @classmethod
    def from_record(
        cls,
        record: WalletRecord,
        encryptor: Optional[KeyMaterialEncryptor] = None,
    ) -> "CustodialWallet":
        """Rebuild a wallet from its stored record.

        Raises:
            SigningError: If the secret does not match the stored address
        """
        keypair = _keypair_from_secret(unseal_secret(record.secret, encryptor))
        if str(keypair.pubkey()) != record.address:
            raise SigningError(f"Stored key material does not match address {record.address}")
        return cls(
            user_id=record.user_id,
            keypair=keypair,
            funding_signature=record.funding_signature,
            created_at=record.created_at,
        )


def _keypair_from_secret(secret: str) -> Keypair:
    try:
        raw = base58.b58decode(secret.strip())
        if len(raw) != 64:
            raise ValueError(f"expected 64 bytes, got {len(raw)}")
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise SigningError(f"Malformed key material: {e}") from None


class WalletCustody:
    """Provisioning, balances and native transfers for custodial wallets."""

    def __init__(
        self,
        ledger: LedgerClient,
        system_keypair: Keypair,
        default_funding_lamports: int = 10_000_000,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.ledger = ledger
        self._system_keypair = system_keypair
        self.default_funding_lamports = default_funding_lamports
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings, ledger: LedgerClient) -> "WalletCustody":
        return cls(
            ledger=ledger,
            system_keypair=settings.system_keypair(),
            default_funding_lamports=settings.initial_wallet_lamports,
            lock_timeout=settings.confirmation_timeout_secs,
        )

    @property
    def system_address(self) -> Pubkey:
        return self._system_keypair.pubkey()

    @asynccontextmanager
    async def signer_session(self, operation: str = "signer_session") -> AsyncIterator[Keypair]:
        """Exclusive use of the custodial keypair.

        Example:
            async with custody.signer_session("airdrop") as treasury:
                await tokens.transfer(treasury, ...)
        """
        async with custody_lock(SIGNER_LOCK_KEY, timeout=self.lock_timeout, operation=operation):
            yield self._system_keypair

    async def provision(
        self,
        user_id: str,
        initial_lamports: Optional[int] = None,
    ) -> CustodialWallet:
        """Create and fund a new wallet.

        The new account is created by the system program with zero data
        space, paid by the custodial signer and signed by both keys.

        Args:
            user_id: Owner of the wallet
            initial_lamports: Funding amount (defaults to configured funding)

        Returns:
            CustodialWallet with the confirmed funding signature
        """
        lamports = self.default_funding_lamports if initial_lamports is None else initial_lamports
        if lamports <= 0:
            raise ValueError(f"Initial funding must be positive, got {lamports}")

        keypair = Keypair()
        logger.info(f"Provisioning wallet {keypair.pubkey()} for user {user_id} ({lamports} lamports)")

        async with self.signer_session("provision") as system:
            ix = create_account(
                CreateAccountParams(
                    from_pubkey=system.pubkey(),
                    to_pubkey=keypair.pubkey(),
                    lamports=lamports,
                    space=0,
                    owner=SYS_PROGRAM_ID,
                )
            )
            latest = await self.ledger.get_latest_blockhash()
            tx = build_transaction([ix], system, [keypair], latest.blockhash)
            signature = await self.ledger.send_and_confirm(tx, latest.last_valid_block_height)

        logger.info(f"Wallet {keypair.pubkey()} funded for user {user_id}: {signature}")
        return CustodialWallet(user_id=user_id, keypair=keypair, funding_signature=signature)

    async def balance(self, address: Pubkey) -> int:
        """Native balance in lamports.

        Raises:
            AccountNotFoundError: If the address was never funded
        """
        account = await self.ledger.get_account(address)
        if account is None:
            raise AccountNotFoundError(f"Account {address} not found")
        return account.lamports

    async def system_balance(self) -> int:
        return await self.ledger.get_balance(self.system_address)

    async def transfer_native(self, from_wallet: CustodialWallet, to: Pubkey, lamports: int) -> str:
        """Transfer lamports out of a custodial wallet."""
        if lamports <= 0:
            raise ValueError(f"Transfer amount must be positive, got {lamports}")

        ix = transfer(
            TransferParams(from_pubkey=from_wallet.address, to_pubkey=to, lamports=lamports)
        )
        latest = await self.ledger.get_latest_blockhash()
        tx = build_transaction([ix], from_wallet.keypair, [], latest.blockhash)
        signature = await self.ledger.send_and_confirm(tx, latest.last_valid_block_height)

        logger.info(f"Transferred {lamports} lamports {from_wallet.address} -> {to}: {signature}")
        return signature

    async def reclaim(self, wallet: CustodialWallet) -> str:
        """Return a wallet's entire native balance to the custodial signer.

        The signer pays the fee so the wallet can be drained to zero.

        Raises:
            AccountNotFoundError: If the wallet was never funded
        """
        async with self.signer_session("reclaim") as system:
            lamports = await self.balance(wallet.address)
            ix = transfer(
                TransferParams(from_pubkey=wallet.address, to_pubkey=system.pubkey(), lamports=lamports)
            )
            latest = await self.ledger.get_latest_blockhash()
            tx = build_transaction([ix], system, [wallet.keypair], latest.blockhash)
            signature = await self.ledger.send_and_confirm(tx, latest.last_valid_block_height)

        logger.info(f"Reclaimed {lamports} lamports from {wallet.address}: {signature}")
        return signature

    def export_key_material(self, wallet: CustodialWallet) -> str:
        """Base58 secret key of a wallet. The result must never be logged."""
        logger.info(f"Key material exported for user {wallet.user_id}")
        return str(wallet.keypair)

    def import_key_material(self, user_id: str, secret: str) -> CustodialWallet:
        """Rebuild a wallet from exported key material. No ledger I/O.

        Raises:
            SigningError: If the secret is malformed
        """
        keypair = _keypair_from_secret(secret)
        logger.info(f"Key material imported for user {user_id}: {keypair.pubkey()}")
        return CustodialWallet(user_id=user_id, keypair=keypair)
