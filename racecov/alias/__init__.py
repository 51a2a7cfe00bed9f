"""Alias information consumed by the lock-set tracker."""

from .lock_alias_oracle import LockAliasOracle

__all__ = [
    'LockAliasOracle',
]
