"""May-alias oracle for lock handles.

The front-end reports, for every lock handle expression that is accessed
through a pointer, the set of mutex objects the pointer may refer to. Handles
without an entry name a single mutex.
"""

from typing import Dict, Iterable, List, Optional

from racecov.core.models import Lock, make_lock


class LockAliasOracle:
    """Resolves lock handles to abstract locks."""

    def __init__(self, aliases: Optional[Dict[str, Iterable[str]]] = None, logger=None):
        self.logger = logger
        self.aliases: Dict[str, List[str]] = {}
        for handle, targets in (aliases or {}).items():
            targets = sorted(set(targets))
            if not targets:
                # nothing known about the pointer: treat it as its own mutex
                if self.logger:
                    self.logger.log(f"Empty alias set for lock handle {handle}, "
                                    f"treating it as a distinct lock", level="DEBUG")
                continue
            self.aliases[handle] = targets
        self._cache: Dict[str, Lock] = {}

    @classmethod
    def from_program(cls, program, logger=None) -> "LockAliasOracle":
        return cls(program.lock_aliases, logger=logger)

    def may_alias(self, handle: str) -> List[str]:
        """Concrete lock identifiers the handle may denote."""
        return list(self.aliases.get(handle, [handle]))

    def resolve(self, handle: str) -> Lock:
        lock = self._cache.get(handle)
        if lock is None:
            lock = make_lock(self.may_alias(handle))
            self._cache[handle] = lock
        return lock

    def is_exact(self, handle: str) -> bool:
        return len(self.may_alias(handle)) == 1
