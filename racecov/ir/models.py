"""IR data models for the per-thread control flow consumed by the analysis."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class OperationKind(Enum):
    """Node kinds distinguished by the analysis."""
    SKIP = "skip"
    READ = "read"
    WRITE = "write"
    LOCK = "lock"
    UNLOCK = "unlock"
    THREAD_CREATE = "thread_create"
    THREAD_JOIN = "thread_join"


# Spellings accepted from front-end output
OPERATION_ALIASES = {
    'nop': OperationKind.SKIP,
    'load': OperationKind.READ,
    'store': OperationKind.WRITE,
    'acquire': OperationKind.LOCK,
    'release': OperationKind.UNLOCK,
    'create': OperationKind.THREAD_CREATE,
    'pthread_create': OperationKind.THREAD_CREATE,
    'join': OperationKind.THREAD_JOIN,
    'pthread_join': OperationKind.THREAD_JOIN,
    'pthread_mutex_lock': OperationKind.LOCK,
    'pthread_mutex_unlock': OperationKind.UNLOCK,
}


@dataclass(frozen=True)
class CFGOperation:
    """Operation attached to a CFG node."""
    kind: OperationKind
    location: Optional[str] = None     # accessed variable / memory region
    handle: Optional[str] = None       # lock handle expression
    site: Optional[str] = None         # thread creation site, used as thread id
    entry: Optional[str] = None        # function started by a thread creation
    line: int = 0
    self_parallel: bool = False        # creation known to start many instances

    @property
    def is_access(self) -> bool:
        return self.kind in (OperationKind.READ, OperationKind.WRITE)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CFGOperation":
        """Build an operation from the front-end's JSON node description."""
        raw_kind = str(data.get('op', 'skip')).lower()
        kind = OPERATION_ALIASES.get(raw_kind)
        if kind is None:
            kind = OperationKind(raw_kind)
        return cls(
            kind=kind,
            location=data.get('var', data.get('location')),
            handle=data.get('lock', data.get('handle')),
            site=data.get('thread', data.get('site')),
            entry=data.get('function', data.get('entry')),
            line=int(data.get('line', 0)),
            self_parallel=bool(data.get('self_parallel', False)),
        )

    def __str__(self) -> str:
        if self.is_access:
            return f"{self.kind.value}({self.location})"
        if self.kind in (OperationKind.LOCK, OperationKind.UNLOCK):
            return f"{self.kind.value}({self.handle})"
        if self.kind == OperationKind.THREAD_CREATE:
            return f"{self.kind.value}({self.site}, {self.entry})"
        if self.kind == OperationKind.THREAD_JOIN:
            return f"{self.kind.value}({self.site})"
        return self.kind.value
