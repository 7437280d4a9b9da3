"""Utility modules for splcustody."""

from splcustody.utils.amounts import from_base_units, to_base_units
from splcustody.utils.locks import (
    CustodyLock,
    LockTimeoutError,
    custody_lock,
    get_lock,
    registered_lock_count,
)

__all__ = [
    "CustodyLock",
    "LockTimeoutError",
    "custody_lock",
    "get_lock",
    "registered_lock_count",
    "to_base_units",
    "from_base_units",
]
