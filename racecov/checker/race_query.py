"""Race candidates over the final antichains."""

from itertools import combinations
from typing import Iterable, List, Optional, Set

from racecov.checker.coverage import FactStore
from racecov.core.models import MAIN_THREAD, RaceCandidate, ThreadRelation, UsagePoint


class RaceQuery:
    """Decides which pairs of retained usage points may race."""

    def __init__(self, main: str = MAIN_THREAD, report_self_parallel_pairs: bool = True,
                 logger=None):
        self.main = main
        self.report_self_parallel_pairs = report_self_parallel_pairs
        self.logger = logger

    def _is_ancestor_of(self, candidate: str, point: UsagePoint) -> bool:
        if candidate == point.thread_id:
            return False
        if candidate == self.main:
            return True
        return point.thread_states.get(candidate) == ThreadRelation.CREATED

    @staticmethod
    def _chain_below(descendant: UsagePoint, ancestor: UsagePoint) -> Set[str]:
        """Threads of ``descendant``'s chain that are not on ``ancestor``'s own chain."""
        return {
            thread_id for thread_id, relation in descendant.thread_states.items()
            if relation.is_chain and ancestor.thread_states.get(thread_id) != ThreadRelation.CREATED
        }

    def _precedes_fork(self, earlier: UsagePoint, later: UsagePoint) -> bool:
        """``earlier`` ran in an ancestor of ``later``'s owner before that ancestor forked the chain.

        Every chain thread below the ancestor must be unseen. A chain thread
        seen with any tag, JOINED included, puts ``earlier`` after the fork.
        """
        if not self._is_ancestor_of(earlier.thread_id, later):
            return False
        below = self._chain_below(later, earlier)
        return bool(below) and not any(t in earlier.thread_states for t in below)

    def _follows_join(self, joiner: UsagePoint, joined: UsagePoint) -> bool:
        """``joiner`` ran after joining ``joined``'s owner, which it created directly."""
        if not self._is_ancestor_of(joiner.thread_id, joined):
            return False
        owner = joined.thread_id
        if joined.thread_states.get(owner) != ThreadRelation.CREATED:
            return False
        if joiner.thread_states.get(owner) != ThreadRelation.JOINED:
            return False
        return self._chain_below(joined, joiner) == {owner}

    def is_sequenced(self, first: UsagePoint, second: UsagePoint) -> bool:
        """True if the two accesses cannot execute at the same time.

        Accesses of one thread are ordered by program order unless several
        instances of that thread may run at once. An ancestor's access is
        ordered with a descendant's when the ancestor had not yet forked any
        thread of the chain leading to the descendant. After a join it is
        ordered only with the joined thread itself, never with threads the
        joined thread forked.
        """
        if first.thread_id == second.thread_id:
            return not first.is_self_parallel and not second.is_self_parallel
        return (self._precedes_fork(first, second) or self._precedes_fork(second, first)
                or self._follows_join(first, second) or self._follows_join(second, first))

    @staticmethod
    def locks_disjoint(first: UsagePoint, second: UsagePoint) -> bool:
        """No concrete lock is held by both accesses."""
        return not (first.lock_set.concrete() & second.lock_set.concrete())

    def is_race(self, first: UsagePoint, second: UsagePoint) -> bool:
        if first.location != second.location:
            return False
        if not (first.is_write or second.is_write):
            return False
        if not self.locks_disjoint(first, second):
            return False
        return not self.is_sequenced(first, second)

    def races_for(self, store: FactStore, location: str) -> List[RaceCandidate]:
        points = store.points(location)
        candidates = []
        for first, second in combinations(points, 2):
            if self.is_race(first, second):
                candidates.append(RaceCandidate(location, first, second,
                                                store.sites(first), store.sites(second)))
        if self.report_self_parallel_pairs:
            for point in points:
                if point.is_write and point.is_self_parallel and self.locks_disjoint(point, point):
                    sites = store.sites(point)
                    candidates.append(RaceCandidate(location, point, point, sites, sites))
        return candidates

    def find_races(self, store: FactStore,
                   false_unsafes: Optional[Iterable[str]] = None) -> List[RaceCandidate]:
        """Race candidates for every location not marked as a false unsafe."""
        excluded: Set[str] = set(false_unsafes or ())
        candidates = []
        for location in store.locations():
            if location in excluded:
                if self.logger:
                    self.logger.log(f"Skipping {location}: marked as false unsafe", level="DEBUG")
                continue
            found = self.races_for(store, location)
            if found and self.logger:
                self.logger.log(f"{len(found)} race candidate(s) on {location}", level="INFO")
            candidates.extend(found)
        return candidates
