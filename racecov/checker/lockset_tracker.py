"""Must-hold lock sets along a thread's control flow."""

from typing import Optional

from racecov.alias.lock_alias_oracle import LockAliasOracle
from racecov.core.models import ConcreteLock, LockSet


class LockSetTracker:
    """Transfer functions for lock and unlock operations."""

    def __init__(self, oracle: Optional[LockAliasOracle] = None, logger=None):
        self.oracle = oracle or LockAliasOracle()
        self.logger = logger

    def initial_state(self) -> LockSet:
        return LockSet()

    def on_lock(self, state: LockSet, handle: str) -> LockSet:
        lock = self.oracle.resolve(handle)
        if lock in state:
            # abstractly still held, whatever the mutex type does at runtime
            if self.logger:
                self.logger.log(f"Lock {lock.render()} acquired while already held", level="DEBUG")
            return state
        return state.add(lock)

    def on_unlock(self, state: LockSet, handle: str) -> LockSet:
        """Release ``handle``.

        A concrete lock is removed when held. For a handle that may denote
        several mutexes the lock is only removed when the held set identifies
        it: either the same aliased lock was acquired, or exactly one held
        concrete lock is among the candidates. Otherwise the set is kept.
        """
        lock = self.oracle.resolve(handle)
        if isinstance(lock, ConcreteLock):
            return state.remove(lock)

        if lock in state:
            return state.remove(lock)

        candidates = [l for l in state.locks
                      if isinstance(l, ConcreteLock) and l.name in lock.names]
        if len(candidates) == 1:
            return state.remove(candidates[0])

        if self.logger:
            self.logger.log(f"Unlock through {handle} {lock.render()} is ambiguous, "
                            f"keeping {state.render()}", level="DEBUG")
        return state

    def join(self, first: LockSet, second: LockSet) -> LockSet:
        return first.intersection(second)

    def widen(self, previous: LockSet, current: LockSet) -> LockSet:
        # the lock domain is finite and the join only shrinks
        return self.join(previous, current)
