"""Data models for usage points, thread-state sets and lock sets."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Any, Union


MAIN_THREAD = "main"


class AccessKind(Enum):
    """Kind of a shared-memory access."""
    READ = "READ"
    WRITE = "WRITE"


class ThreadRelation(Enum):
    """Relation of a thread to the observing thread.

    JOINED: the observer joined the thread; it no longer runs next to the
    observer, but its descendants may.
    PARENT: the observer (or one of its ancestors) created the thread and it is
    still running next to the observer.
    CREATED: the thread is on the observer's own creation chain.
    SELF_PARALLEL: several instances from one creation site may be live at once.
    """
    JOINED = "JOINED_THREAD"
    PARENT = "PARENT_THREAD"
    CREATED = "CREATED_THREAD"
    SELF_PARALLEL = "SELF_PARALLEL_THREAD"

    @property
    def rank(self) -> int:
        return _RELATION_RANK[self]

    @property
    def is_chain(self) -> bool:
        """CREATED or SELF_PARALLEL, the tags a creation chain carries."""
        return self in (ThreadRelation.CREATED, ThreadRelation.SELF_PARALLEL)

    def is_refined_by(self, other: "ThreadRelation") -> bool:
        """True if ``other`` is at least as co-live as ``self``."""
        return self.rank <= other.rank

    def join(self, other: "ThreadRelation") -> "ThreadRelation":
        return self if self.rank >= other.rank else other

    @classmethod
    def parse(cls, text: str) -> "ThreadRelation":
        text = text.strip().upper()
        for relation in cls:
            if text in (relation.value, relation.name):
                return relation
        raise ValueError(f"Unknown thread relation: {text}")


_RELATION_RANK = {
    ThreadRelation.JOINED: 0,
    ThreadRelation.PARENT: 1,
    ThreadRelation.CREATED: 2,
    ThreadRelation.SELF_PARALLEL: 3,
}


class ThreadStateSet:
    """Immutable mapping from thread id to :class:`ThreadRelation`."""

    __slots__ = ("_entries", "_hash")

    def __init__(self, entries: Optional[Dict[str, ThreadRelation]] = None):
        self._entries: Dict[str, ThreadRelation] = dict(sorted((entries or {}).items()))
        self._hash = hash(frozenset(self._entries.items()))

    def __getitem__(self, thread_id: str) -> ThreadRelation:
        return self._entries[thread_id]

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ThreadStateSet):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return f"ThreadStateSet({self.render()})"

    def get(self, thread_id: str, default=None) -> Optional[ThreadRelation]:
        return self._entries.get(thread_id, default)

    def items(self):
        return self._entries.items()

    def with_entry(self, thread_id: str, relation: ThreadRelation) -> "ThreadStateSet":
        entries = dict(self._entries)
        entries[thread_id] = relation
        return ThreadStateSet(entries)

    def join(self, other: "ThreadStateSet") -> "ThreadStateSet":
        """Key union, relations joined pointwise."""
        entries = dict(self._entries)
        for thread_id, relation in other.items():
            current = entries.get(thread_id)
            entries[thread_id] = relation if current is None else current.join(relation)
        return ThreadStateSet(entries)

    def is_covered_by(self, other: "ThreadStateSet") -> bool:
        """Mapping inclusion: every entry here appears in ``other`` with an equal or more co-live tag."""
        for thread_id, relation in self._entries.items():
            other_relation = other.get(thread_id)
            if other_relation is None or not relation.is_refined_by(other_relation):
                return False
        return True

    def render(self) -> str:
        return "{" + ",".join(f"{t}={r.value}" for t, r in self._entries.items()) + "}"


@dataclass(frozen=True, order=True)
class ConcreteLock:
    """A statically distinguishable mutex object."""
    name: str

    def render(self) -> str:
        return self.name


@dataclass(frozen=True)
class AliasedLock:
    """A lock taken through a pointer that may refer to any of ``names``."""
    names: FrozenSet[str]

    def __post_init__(self):
        if len(self.names) < 2:
            raise ValueError("An aliased lock needs at least two candidate locks; use ConcreteLock")

    def render(self) -> str:
        return "(" + "|".join(sorted(self.names)) + ")"


Lock = Union[ConcreteLock, AliasedLock]


def make_lock(names: Iterable[str]) -> Lock:
    """Build the abstract lock for a may-alias set, normalising singletons."""
    names = frozenset(names)
    if not names:
        raise ValueError("Empty may-alias set for a lock handle")
    if len(names) == 1:
        return ConcreteLock(next(iter(names)))
    return AliasedLock(names)


def _lock_sort_key(lock: Lock) -> Tuple[int, str]:
    return (0, lock.name) if isinstance(lock, ConcreteLock) else (1, lock.render())


@dataclass(frozen=True)
class LockSet:
    """Locks provably held by a thread at a program point."""
    locks: FrozenSet[Lock] = frozenset()

    @classmethod
    def of(cls, *names: str) -> "LockSet":
        return cls(frozenset(ConcreteLock(n) for n in names))

    def __len__(self) -> int:
        return len(self.locks)

    def __iter__(self) -> Iterator[Lock]:
        return iter(sorted(self.locks, key=_lock_sort_key))

    def __contains__(self, lock: object) -> bool:
        return lock in self.locks

    def is_empty(self) -> bool:
        return not self.locks

    def add(self, lock: Lock) -> "LockSet":
        if lock in self.locks:
            return self
        return LockSet(self.locks | {lock})

    def remove(self, lock: Lock) -> "LockSet":
        if lock not in self.locks:
            return self
        return LockSet(self.locks - {lock})

    def intersection(self, other: "LockSet") -> "LockSet":
        return LockSet(self.locks & other.locks)

    def issubset(self, other: "LockSet") -> bool:
        return self.locks <= other.locks

    def concrete(self) -> FrozenSet[str]:
        """Names of locks known exactly; aliased locks prove nothing about identity."""
        return frozenset(l.name for l in self.locks if isinstance(l, ConcreteLock))

    def render(self) -> str:
        return "[" + ",".join(lock.render() for lock in self) + "]"


@dataclass(frozen=True)
class CodeLocation:
    """Represents a location in source code."""
    file_path: str
    line_start: int
    line_end: int = 0
    function_name: str = ""
    node_id: str = ""

    def __str__(self) -> str:
        if self.line_end in (0, self.line_start):
            return f"{self.file_path}:{self.line_start}"
        return f"{self.file_path}:{self.line_start}-{self.line_end}"


@dataclass(frozen=True)
class UsagePoint:
    """One shared-memory access together with its synchronisation context.

    The program location (``site``) is not part of equality: two accesses
    with the same abstract context are the same fact for coverage and race
    purposes, and the store keeps their sites side by side.
    """
    location: str
    access: AccessKind
    thread_id: str
    thread_states: ThreadStateSet = field(default_factory=ThreadStateSet)
    lock_set: LockSet = field(default_factory=LockSet)
    site: Optional[CodeLocation] = field(default=None, compare=False)

    @property
    def is_write(self) -> bool:
        return self.access == AccessKind.WRITE

    @property
    def is_self_parallel(self) -> bool:
        return self.thread_states.get(self.thread_id) == ThreadRelation.SELF_PARALLEL

    def render(self) -> str:
        return (f"{self.access.value}:[{self.thread_id}:{self.thread_states.render()},"
                f"{self.lock_set.render()}]")

    def __str__(self) -> str:
        return self.render()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'location': self.location,
            'access': self.access.value,
            'thread': self.thread_id,
            'thread_states': {t: r.value for t, r in self.thread_states.items()},
            'locks': [lock.render() for lock in self.lock_set],
            'site': str(self.site) if self.site else None,
            'usage': self.render(),
        }


@dataclass
class RaceCandidate:
    """A pair of usage points that may execute concurrently without a common lock."""
    location: str
    first: UsagePoint
    second: UsagePoint
    first_sites: List[CodeLocation] = field(default_factory=list)
    second_sites: List[CodeLocation] = field(default_factory=list)

    @property
    def severity(self) -> str:
        if self.first.is_write and self.second.is_write:
            return 'high'
        return 'medium'

    @property
    def description(self) -> str:
        if self.first.is_write and self.second.is_write:
            kind = "concurrent writes"
        else:
            kind = "concurrent read/write"
        return (f"Possible data race on '{self.location}': {kind} "
                f"in threads {self.first.thread_id} and {self.second.thread_id}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'location': self.location,
            'severity': self.severity,
            'description': self.description,
            'first': self.first.render(),
            'second': self.second.render(),
            'first_sites': [str(s) for s in self.first_sites],
            'second_sites': [str(s) for s in self.second_sites],
        }
