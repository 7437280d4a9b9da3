"""Ledger access: client capability, transaction assembly, RPC implementation."""

from splcustody.ledger.base import AccountInfo, LatestBlockhash, LedgerClient, SignedTransaction
from splcustody.ledger.rpc import SolanaRpcLedgerClient
from splcustody.ledger.transactions import build_transaction, sign_versioned_transaction

__all__ = [
    "AccountInfo",
    "LatestBlockhash",
    "LedgerClient",
    "SignedTransaction",
    "SolanaRpcLedgerClient",
    "build_transaction",
    "sign_versioned_transaction",
]
