"""
Usage-point analysis for multithreaded C programs.

Each thread (identified by its creation site, the main thread by the name of
the entry function) is traversed with a forward worklist over its CFG. The
abstract state at a node is the pair (ThreadStateSet, LockSet); every shared
access yields a UsagePoint that goes into the FactStore. Threads created on
the way are scheduled with the state visible at their creation, and are
traversed again whenever that entry state grows. Once no entry state changes
the FactStore holds the final antichains and RaceQuery runs over them.
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Set, Tuple

from racecov.alias.lock_alias_oracle import LockAliasOracle
from racecov.checker.coverage import FactStore
from racecov.checker.lockset_tracker import LockSetTracker
from racecov.checker.race_query import RaceQuery
from racecov.checker.thread_tracker import ThreadHierarchyTracker
from racecov.checker.variable_skipper import VariableSkipper
from racecov.config import AnalysisConfig
from racecov.core.models import (
    AccessKind, CodeLocation, LockSet, RaceCandidate, ThreadStateSet, UsagePoint
)
from racecov.ir.control_flow_graph import ProgramCFG, ThreadFunction
from racecov.ir.models import CFGOperation, OperationKind
from racecov.utils import FixpointDivergenceError, RefinementError


State = Tuple[ThreadStateSet, LockSet]


@dataclass(frozen=True)
class ReachabilityPredicate:
    """Narrowed reachability for one thread, supplied by a refinement step.

    Nodes in ``blocked_nodes`` and edges in ``blocked_edges`` are treated as
    infeasible when the thread is traversed again.
    """
    thread_id: str
    blocked_nodes: FrozenSet[str] = field(default_factory=frozenset)
    blocked_edges: FrozenSet[Tuple[str, str]] = field(default_factory=frozenset)

    def allows_node(self, node: str) -> bool:
        return node not in self.blocked_nodes

    def allows_edge(self, source: str, target: str) -> bool:
        return (source, target) not in self.blocked_edges and self.allows_node(target)


@dataclass
class AnalysisStatistics:
    """Counters collected while the analysis runs."""
    traversed_nodes: int = 0
    inserted_usages: int = 0
    skipped_usages: int = 0
    thread_traversals: int = 0
    widenings: int = 0
    refinements: int = 0
    thread_iterations: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    analysis_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'traversed_nodes': self.traversed_nodes,
            'inserted_usages': self.inserted_usages,
            'skipped_usages': self.skipped_usages,
            'thread_traversals': self.thread_traversals,
            'widenings': self.widenings,
            'refinements': self.refinements,
            'thread_iterations': dict(self.thread_iterations),
            'analysis_time': round(self.analysis_time, 6),
        }


class UsageAnalyzer:
    """Thread-modular fixpoint computation of usage points and race candidates."""

    def __init__(self, program: ProgramCFG, config: Optional[AnalysisConfig] = None,
                 logger=None, oracle: Optional[LockAliasOracle] = None):
        """Initialize the analyzer.

        Args:
            program: Per-thread control flow graphs
            config: Engine settings, defaults to ``AnalysisConfig()``
            logger: Logger instance for debugging
            oracle: May-alias oracle for lock handles, defaults to the program's alias table
        """
        self.program = program
        self.config = config or AnalysisConfig()
        self.logger = logger
        self.main = self.config.main_thread
        self.oracle = oracle or LockAliasOracle.from_program(program, logger=logger)

        self.thread_tracker = ThreadHierarchyTracker(self.main, logger)
        self.lock_tracker = LockSetTracker(self.oracle, logger)
        self.race_query = RaceQuery(self.main, self.config.report_self_parallel_pairs, logger)
        self.skipper = VariableSkipper(self.config.skipped_variables)
        self.store = self._new_store()

        # thread id -> function executed by the thread
        self.thread_functions: Dict[str, str] = {self.main: program.main}
        # created thread id -> creator id -> entry state contributed by that creator
        self.entry_contributions: Dict[str, Dict[str, ThreadStateSet]] = defaultdict(dict)
        self.predicates: Dict[str, ReachabilityPredicate] = {}
        self.false_unsafes: Set[str] = set()
        self.statistics = AnalysisStatistics()
        self._iterations = 0
        self._analyzed = False

    def _new_store(self) -> FactStore:
        return FactStore(self.config.strict_empty_lockset_cover, self.main, self.logger)

    def entry_state(self, thread_id: str) -> Optional[ThreadStateSet]:
        """ThreadStateSet a thread starts with: the join over all its creators."""
        if thread_id == self.main:
            return self.thread_tracker.initial_state()
        contributions = self.entry_contributions.get(thread_id)
        if not contributions:
            return None
        state = None
        for contribution in contributions.values():
            state = contribution if state is None else self.thread_tracker.join(state, contribution)
        return state

    def analyze(self) -> FactStore:
        """Run the analysis from the main thread to a fixpoint."""
        start = time.time()
        self.program.validate()
        self.thread_tracker = ThreadHierarchyTracker(self.main, self.logger)
        self.store = self._new_store()
        self.thread_functions = {self.main: self.program.main}
        self.entry_contributions = defaultdict(dict)
        self.statistics = AnalysisStatistics()
        self._iterations = 0

        self._run(deque([self.main]))
        self._analyzed = True

        self.statistics.analysis_time = time.time() - start
        if self.logger:
            stats = self.store.statistics()
            self.logger.log(f"Usage analysis complete: {len(self.thread_functions)} threads, "
                            f"{stats['retained']} usage points on {stats['locations']} locations "
                            f"({stats['covered']} covered)")
        return self.store

    def _run(self, pending: Deque[str]) -> None:
        queued = set(pending)
        while pending:
            thread_id = pending.popleft()
            queued.discard(thread_id)
            entry = self.entry_state(thread_id)
            if entry is None:
                # no creator left after refinement
                continue
            created = self._traverse_thread(thread_id, entry)
            for site, (function_name, child_state) in created.items():
                self.thread_functions[site] = function_name
                previous = self.entry_state(site)
                self.entry_contributions[site][thread_id] = child_state
                if self.entry_state(site) != previous and site not in queued:
                    pending.append(site)
                    queued.add(site)

    def _traverse_thread(self, thread_id: str, entry_state: ThreadStateSet
                         ) -> Dict[str, Tuple[str, ThreadStateSet]]:
        """Worklist iteration over one thread's CFG.

        Returns:
            Threads created on the way: site -> (entry function, joined entry state)
        """
        function = self.program.function(self.thread_functions[thread_id])
        predicate = self.predicates.get(thread_id)
        self.statistics.thread_traversals += 1
        if self.logger:
            self.logger.log(f"Traversing thread {thread_id} ({function.name}) "
                            f"from {entry_state.render()}", level="DEBUG")

        created: Dict[str, Tuple[str, ThreadStateSet]] = {}
        if predicate and not predicate.allows_node(function.entry):
            return created

        states: Dict[str, State] = {function.entry: (entry_state, self.lock_tracker.initial_state())}
        visits: Dict[str, int] = defaultdict(int)
        worklist = deque([function.entry])
        queued = {function.entry}
        loop_headers = function.loop_headers

        while worklist:
            node = worklist.popleft()
            queued.discard(node)
            self._count_iteration(thread_id)

            out_state = self._transfer(thread_id, function, node, states[node], created)

            for successor in function.successors(node):
                if predicate and not predicate.allows_edge(node, successor):
                    continue
                new_state = out_state
                old_state = states.get(successor)
                if old_state is not None:
                    new_state = (self.thread_tracker.join(old_state[0], out_state[0]),
                                 self.lock_tracker.join(old_state[1], out_state[1]))
                    if successor in loop_headers:
                        visits[successor] += 1
                        if visits[successor] > self.config.widening_threshold:
                            new_state = (self.thread_tracker.widen(old_state[0], new_state[0]),
                                         self.lock_tracker.widen(old_state[1], new_state[1]))
                            self.statistics.widenings += 1
                    if new_state == old_state:
                        continue
                states[successor] = new_state
                if successor not in queued:
                    worklist.append(successor)
                    queued.add(successor)

        return created

    def _count_iteration(self, thread_id: str) -> None:
        self._iterations += 1
        self.statistics.traversed_nodes += 1
        self.statistics.thread_iterations[thread_id] += 1
        if self._iterations > self.config.max_iterations:
            raise FixpointDivergenceError(
                f"No fixpoint after {self.config.max_iterations} iterations "
                f"(last thread: {thread_id})", self.logger)

    def _transfer(self, thread_id: str, function: ThreadFunction, node: str, state: State,
                  created: Dict[str, Tuple[str, ThreadStateSet]]) -> State:
        thread_states, locks = state
        op = function.operation(node)

        if op.is_access:
            self._record_usage(thread_id, function, node, op, thread_states, locks)
        elif op.kind == OperationKind.LOCK:
            locks = self.lock_tracker.on_lock(locks, op.handle)
        elif op.kind == OperationKind.UNLOCK:
            locks = self.lock_tracker.on_unlock(locks, op.handle)
        elif op.kind == OperationKind.THREAD_CREATE:
            thread_states, child = self.thread_tracker.on_create(
                thread_id, thread_states, op.site, op.self_parallel)
            if op.site in created:
                child = self.thread_tracker.join(created[op.site][1], child)
            created[op.site] = (op.entry, child)
        elif op.kind == OperationKind.THREAD_JOIN:
            thread_states = self.thread_tracker.on_join(thread_states, op.site)

        return thread_states, locks

    def _record_usage(self, thread_id: str, function: ThreadFunction, node: str,
                      op: CFGOperation, thread_states: ThreadStateSet, locks: LockSet) -> None:
        if self.skipper.should_be_skipped(op.location, function.name):
            self.statistics.skipped_usages += 1
            return
        access = AccessKind.WRITE if op.kind == OperationKind.WRITE else AccessKind.READ
        site = CodeLocation(function.file_path, op.line, op.line, function.name, node)
        point = UsagePoint(op.location, access, thread_id, thread_states, locks, site)
        self.store.insert(point)
        self.statistics.inserted_usages += 1

    def refine(self, predicate: ReachabilityPredicate) -> FactStore:
        """Re-traverse a thread under a narrowed reachability predicate.

        Facts of the thread and of every thread it (transitively) created are
        dropped, then those threads are traversed again. The predicate
        replaces any earlier predicate for the same thread.
        """
        if not self._analyzed:
            raise RefinementError("refine() called before analyze()", self.logger)
        thread_id = predicate.thread_id
        if thread_id not in self.thread_functions:
            raise RefinementError(f"Unknown thread in refinement predicate: {thread_id}", self.logger)

        self.predicates[thread_id] = predicate
        self.statistics.refinements += 1
        affected = {thread_id} | self.thread_tracker.descendants(thread_id)
        if self.logger:
            self.logger.log(f"Refining thread {thread_id}, re-traversing {sorted(affected)}")

        self.store = self.store.rebuild_without(affected)
        for contributions in self.entry_contributions.values():
            for creator in affected:
                contributions.pop(creator, None)
        self.thread_tracker.forget_creations(affected)

        ordered = [t for t in sorted(affected) if t == thread_id] + \
                  [t for t in sorted(affected) if t != thread_id]
        self._run(deque(ordered))
        for stale in [t for t in affected if t != self.main and self.entry_state(t) is None]:
            self.thread_functions.pop(stale, None)
        return self.store

    def remove_usage(self, point: UsagePoint) -> bool:
        """Drop a single usage point proven infeasible; facts it covered come back."""
        return self.store.remove(point)

    def mark_false_unsafe(self, location: str) -> None:
        self.false_unsafes.add(location)
        if self.logger:
            self.logger.log(f"Location {location} marked as false unsafe", level="DEBUG")

    def reset_false_unsafes(self) -> None:
        self.false_unsafes.clear()

    def find_races(self) -> List[RaceCandidate]:
        if not self._analyzed:
            self.analyze()
        return self.race_query.find_races(self.store, self.false_unsafes)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = dict(self.store.statistics())
        metrics.update(self.statistics.to_dict())
        metrics['num_threads'] = len(self.thread_functions)
        metrics['false_unsafes'] = sorted(self.false_unsafes)
        return metrics

    def get_analysis_results(self) -> Dict[str, Any]:
        """Get analysis results."""
        races = self.find_races()
        metrics = self.get_metrics()
        metrics['num_race_candidates'] = len(races)
        return {
            'metrics': metrics,
            'usages': {loc: self.store.points(loc) for loc in self.store.locations()},
            'race_candidates': races,
            'threads': {
                thread_id: {
                    'function': function_name,
                    'entry_state': self.entry_state(thread_id),
                    'creator': self.thread_tracker.creator_of(thread_id),
                }
                for thread_id, function_name in sorted(self.thread_functions.items())
            },
        }
