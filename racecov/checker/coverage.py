"""Coverage order over usage points and the antichain fact store.

``covers(b, a)`` holds when ``a`` adds nothing to race detection once ``b``
is known: same location and access kind, ``b`` sees at least the threads of
``a`` with at least as co-live tags, ``b`` holds no lock ``a`` does not hold,
and the owning threads are compatible.

For every location the store keeps only maximal points. Because the order is
reflexive, transitive and antisymmetric on the abstract part of a point, the
retained set after a sequence of insertions is exactly the set of maximal
inserted points, whatever the insertion order.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Set, Tuple

from racecov.core.models import MAIN_THREAD, CodeLocation, UsagePoint


def _chain_hidden_from(covering: UsagePoint, covered: UsagePoint) -> bool:
    """``covered`` sees each chain thread of ``covering`` as part of its own chain or not at all."""
    covered_sees = covered.thread_states
    for thread_id, relation in covering.thread_states.items():
        if not relation.is_chain:
            continue
        seen = covered_sees.get(thread_id)
        if seen is not None and not seen.is_chain:
            return False
    return True


def owners_compatible(covering: UsagePoint, covered: UsagePoint, main: str = MAIN_THREAD) -> bool:
    """True if a fact of ``covering``'s owner may stand in for ``covered``'s owner.

    Across threads the covered owner must be main or an ancestor on the
    covering point's chain, and the covered point must come before the fork
    of that chain: at least one chain thread is unseen by it, and it sees no
    chain thread as a sibling or as a joined thread. A point of main never
    stands in for another thread.
    """
    if not _chain_hidden_from(covering, covered):
        return False
    if covering.thread_id == covered.thread_id:
        return True
    if covering.thread_id == main:
        return False
    if covered.thread_id != main:
        relation = covering.thread_states.get(covered.thread_id)
        if relation is None or not relation.is_chain:
            return False
    covered_sees = covered.thread_states
    return any(relation.is_chain and thread_id not in covered_sees
               for thread_id, relation in covering.thread_states.items())


def covers(covering: UsagePoint, covered: UsagePoint,
           strict_empty_lockset_cover: bool = False, main: str = MAIN_THREAD) -> bool:
    """Return True if ``covering`` makes ``covered`` redundant."""
    if covering.location != covered.location or covering.access != covered.access:
        return False
    if not covered.thread_states.is_covered_by(covering.thread_states):
        return False
    if not covering.lock_set.issubset(covered.lock_set):
        return False
    if strict_empty_lockset_cover and covering.lock_set.is_empty() \
            and not covered.lock_set.is_empty():
        return False
    return owners_compatible(covering, covered, main)


class UsagePointSet:
    """Antichain of usage points for one location.

    Each retained point remembers the points it covered, so that removing it
    puts them back.
    """

    def __init__(self, location: str, strict_empty_lockset_cover: bool = False,
                 main: str = MAIN_THREAD):
        self.location = location
        self.strict_empty_lockset_cover = strict_empty_lockset_cover
        self.main = main
        self._retained: Dict[UsagePoint, List[CodeLocation]] = {}
        self._covered: Dict[UsagePoint, List[UsagePoint]] = {}

    def __len__(self) -> int:
        return len(self._retained)

    def __iter__(self):
        return iter(self.points())

    def __contains__(self, point: object) -> bool:
        return point in self._retained

    def covers(self, covering: UsagePoint, covered: UsagePoint) -> bool:
        return covers(covering, covered, self.strict_empty_lockset_cover, self.main)

    def add(self, point: UsagePoint) -> bool:
        """Insert ``point``; return True if the set of retained facts changed."""
        if point.location != self.location:
            raise ValueError(f"Usage of {point.location} added to the set of {self.location}")

        if point in self._retained:
            self._add_site(self._retained[point], point.site)
            return False

        for retained in self._retained:
            if self.covers(retained, point):
                self._record_covered(retained, point)
                return False

        absorbed = [r for r in self._retained if self.covers(point, r)]
        covered = self._covered.setdefault(point, [])
        for retained in absorbed:
            del self._retained[retained]
            covered.append(retained)
            covered.extend(self._covered.pop(retained, []))

        self._retained[point] = []
        self._add_site(self._retained[point], point.site)
        return True

    def remove(self, point: UsagePoint) -> bool:
        """Remove a retained point and re-insert everything it covered."""
        if point not in self._retained:
            # a covered point only needs to be forgotten
            found = False
            for covered in self._covered.values():
                while point in covered:
                    covered.remove(point)
                    found = True
            return found

        del self._retained[point]
        for covered in self._covered.pop(point, []):
            self.add(covered)
        return True

    def points(self) -> List[UsagePoint]:
        return sorted(self._retained, key=_point_sort_key)

    def sites(self, point: UsagePoint) -> List[CodeLocation]:
        return list(self._retained.get(point, []))

    def covered_by(self, point: UsagePoint) -> List[UsagePoint]:
        return list(self._covered.get(point, []))

    def num_covered(self) -> int:
        return sum(len(points) for points in self._covered.values())

    def _record_covered(self, retained: UsagePoint, point: UsagePoint) -> None:
        covered = self._covered.setdefault(retained, [])
        if not any(c == point and c.site == point.site for c in covered):
            covered.append(point)

    @staticmethod
    def _add_site(sites: List[CodeLocation], site: Optional[CodeLocation]) -> None:
        if site is not None and site not in sites:
            sites.append(site)


def _point_sort_key(point: UsagePoint):
    return (point.access.value, point.thread_id, point.render())


class FactStore:
    """Per-location antichains of usage points plus the insertion history.

    The history holds each distinct (point, site) pair once, in first
    insertion order; re-inserting a recorded pair leaves the store untouched.
    """

    def __init__(self, strict_empty_lockset_cover: bool = False, main: str = MAIN_THREAD,
                 logger=None):
        self.strict_empty_lockset_cover = strict_empty_lockset_cover
        self.main = main
        self.logger = logger
        self.history: List[UsagePoint] = []
        self._recorded: Set[Tuple[UsagePoint, Optional[CodeLocation]]] = set()
        self._sets: Dict[str, UsagePointSet] = {}
        self._removed = 0

    def __len__(self) -> int:
        return sum(len(s) for s in self._sets.values())

    def __contains__(self, point: object) -> bool:
        return isinstance(point, UsagePoint) and point in self._sets.get(point.location, ())

    def insert(self, point: UsagePoint) -> bool:
        """Add a usage point to its location's antichain."""
        key = (point, point.site)
        if key in self._recorded:
            return False
        self._recorded.add(key)
        self.history.append(point)
        usage_set = self._sets.get(point.location)
        if usage_set is None:
            usage_set = UsagePointSet(point.location, self.strict_empty_lockset_cover, self.main)
            self._sets[point.location] = usage_set
        changed = usage_set.add(point)
        if self.logger:
            if changed:
                self.logger.log(f"New usage of {point.location}: {point.render()}", level="DEBUG")
        return changed

    def remove(self, point: UsagePoint) -> bool:
        """Remove a usage point, e.g. one proven infeasible by refinement."""
        usage_set = self._sets.get(point.location)
        if usage_set is None:
            return False
        removed = usage_set.remove(point)
        if removed:
            self._removed += 1
            self.history = [p for p in self.history if p != point]
            self._recorded = {key for key in self._recorded if key[0] != point}
            if not len(usage_set) and not usage_set.num_covered():
                del self._sets[point.location]
        return removed

    def rebuild_without(self, thread_ids: Iterable[str]) -> "FactStore":
        """A fresh store holding the history of every thread except ``thread_ids``."""
        dropped = set(thread_ids)
        store = FactStore(self.strict_empty_lockset_cover, self.main, self.logger)
        for point in self.history:
            if point.thread_id not in dropped:
                store.insert(point)
        return store

    def locations(self) -> List[str]:
        return sorted(loc for loc, s in self._sets.items() if len(s))

    def points(self, location: Optional[str] = None) -> List[UsagePoint]:
        if location is not None:
            usage_set = self._sets.get(location)
            return usage_set.points() if usage_set else []
        return [p for loc in self.locations() for p in self._sets[loc].points()]

    def sites(self, point: UsagePoint) -> List[CodeLocation]:
        usage_set = self._sets.get(point.location)
        return usage_set.sites(point) if usage_set else []

    def statistics(self) -> Dict[str, int]:
        by_access = Counter(p.access.value for p in self.points())
        return {
            'locations': len(self.locations()),
            'inserted': len(self.history),
            'retained': len(self),
            'covered': sum(s.num_covered() for s in self._sets.values()),
            'removed': self._removed,
            'retained_reads': by_access.get('READ', 0),
            'retained_writes': by_access.get('WRITE', 0),
        }
