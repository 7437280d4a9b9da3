"""Error taxonomy for custody, token and swap operations.

Ledger-facing operations raise these instead of retrying internally, so the
caller decides whether an error is worth another attempt:

- LedgerConnectionError: transient, safe to retry
- SubmissionError: rejected before confirmation, nothing landed
- ConfirmationError: outcome unknown, re-query the ledger before retrying
- SigningError / ConfigurationError: fatal
"""

from typing import Optional, Sequence


class CustodyError(Exception):
    """Base class for all errors raised by this package."""

    pass


class ConfigurationError(CustodyError):
    """Missing or malformed configuration. Raised at load time."""

    pass


class LedgerError(CustodyError):
    """Ledger client failure that is not transient."""

    pass


class LedgerConnectionError(LedgerError):
    """RPC endpoint unreachable or timed out on a read."""

    pass


class SubmissionError(LedgerError):
    """Transaction rejected before confirmation (preflight, bad blockhash, ...)."""

    pass


class ConfirmationError(LedgerError):
    """Transaction submitted but not confirmed in time, or failed on-chain."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class SigningError(CustodyError):
    """Key material could not sign the transaction."""

    pass


class AccountNotFoundError(CustodyError):
    """Address does not exist on the ledger."""

    pass


class TokenAccountNotFoundError(CustodyError):
    """Address exists but is not a token account for the expected mint."""

    pass


class InsufficientBalanceError(CustodyError):
    """Client-side balance guard failed. No transaction was submitted."""

    def __init__(self, message: str, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.available = available
        self.requested = requested


class TokenTransferError(CustodyError):
    """Token transfer parameters are inconsistent with the mint."""

    pass


class SwapError(CustodyError):
    """Quote or swap execution failed."""

    pass


class PartialSwapError(SwapError):
    """A multi-hop conversion stopped after some hops settled.

    The completed hops are on-chain; callers must reconcile the
    intermediate balance they left behind.
    """

    def __init__(self, message: str, completed: Sequence, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.completed = tuple(completed)
        self.cause = cause

    @property
    def stranded_amount(self) -> int:
        """Intermediate asset amount left by the last completed hop."""
        if not self.completed:
            return 0
        return self.completed[-1].to_amount


class WalletAlreadyExistsError(CustodyError):
    """A custodial wallet is already held for this user."""

    pass


class WalletNotFoundError(CustodyError):
    """No custodial wallet is held for this user."""

    pass


class WalletPersistenceError(CustodyError):
    """A provisioned wallet could not be stored.

    Carries the wallet so the caller can reconcile. `reclaim_signature` is
    set when its funding was returned to the custodial signer; when it is
    None the funds are still in `wallet` and its key material is only held
    by this exception.
    """

    def __init__(
        self,
        message: str,
        wallet,
        reclaim_signature: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.wallet = wallet
        self.reclaim_signature = reclaim_signature
        self.cause = cause
