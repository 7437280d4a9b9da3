"""Keyed exclusive locks for custodial operations.

Two keys are in use: one per user (``user:<id>``), held around every
mutating service call, and ``custodial-signer``, held while the shared
custodial keypair signs. When both are needed the user key is taken first.

Registry entries are reference counted and dropped once no operation holds
or waits on them, so the registry does not grow with the number of users.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

_locks: dict[str, asyncio.Lock] = {}
_refs: dict[str, int] = {}
_registry_lock = asyncio.Lock()


class LockTimeoutError(Exception):
    """A custody lock stayed held for longer than the caller would wait."""

    pass


async def get_lock(key: str) -> asyncio.Lock:
    """Look up the lock registered for `key`, creating it if needed."""
    async with _registry_lock:
        return _locks.setdefault(key, asyncio.Lock())


def _checkout(key: str) -> asyncio.Lock:
    _refs[key] = _refs.get(key, 0) + 1
    return _locks.setdefault(key, asyncio.Lock())


def _checkin(key: str) -> None:
    remaining = _refs.get(key, 1) - 1
    if remaining > 0:
        _refs[key] = remaining
        return

    _refs.pop(key, None)
    lock = _locks.get(key)
    if lock is not None and not lock.locked():
        del _locks[key]
        logger.debug(f"Dropped idle lock {key}")


async def _acquire(lock: asyncio.Lock, key: str, timeout: Optional[float], operation: str) -> None:
    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        logger.warning(f"{operation} gave up waiting for {key} after {timeout}s")
        raise LockTimeoutError(f"{key} is busy, {operation} waited {timeout}s") from None


class CustodyLock:
    """Holds a custody key for the duration of an ``async with`` block.

    Example:
        async with CustodyLock(user_lock_key(user_id), operation="withdraw"):
            await tokens.settle_to_external(wallet.keypair, destination, asset, amount, decimals)
    """

    def __init__(
        self,
        key: str,
        timeout: Optional[float] = 30.0,
        operation: str = "custody_operation",
    ):
        """
        Args:
            key: User key or ``custodial-signer``
            timeout: Seconds to wait before LockTimeoutError (None waits forever)
            operation: Name of the custodial operation, used in logs
        """
        self.key = key
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None

    async def __aenter__(self) -> "CustodyLock":
        self._lock = _checkout(self.key)
        try:
            await _acquire(self._lock, self.key, self.timeout, self.operation)
        except BaseException:
            self._lock = None
            _checkin(self.key)
            raise

        logger.debug(f"{self.operation} holds {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._lock is not None:
            self._lock.release()
            self._lock = None
            _checkin(self.key)
            logger.debug(f"{self.operation} released {self.key}")
        return False


@asynccontextmanager
async def custody_lock(
    key: str,
    timeout: Optional[float] = 30.0,
    operation: str = "custody_operation",
):
    """Generator form of CustodyLock, used for the signer session.

    Example:
        async with custody_lock(SIGNER_LOCK_KEY, operation="provision"):
            await ledger.send_and_confirm(tx)
    """
    lock = _checkout(key)
    try:
        await _acquire(lock, key, timeout, operation)
    except BaseException:
        _checkin(key)
        raise

    logger.debug(f"{operation} holds {key}")
    try:
        yield
    finally:
        lock.release()
        _checkin(key)
        logger.debug(f"{operation} released {key}")


def user_lock_key(user_id: str) -> str:
    return f"user:{user_id}"


def registered_lock_count() -> int:
    return len(_locks)


def clear_locks() -> None:
    """Forget every registered lock. Tests only."""
    _locks.clear()
    _refs.clear()
