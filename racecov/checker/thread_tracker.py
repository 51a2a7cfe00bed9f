"""Thread hierarchy tracking.

Threads are identified by their creation site, so the set of thread ids is
bounded by the number of creation sites in the program. A thread's
ThreadStateSet lists every thread that may run next to it, tagged with how it
relates to the observer:

* the observer itself and every thread on its creation chain are CREATED,
* threads forked by the observer (or by an ancestor before the chain was
  forked) are PARENT,
* a site whose instances may overlap with each other is SELF_PARALLEL,
* a thread the observer has joined stays in the set as JOINED.

The main thread never appears in a set.
"""

from typing import Iterable, Optional, Set, Tuple

import networkx as nx

from racecov.core.models import MAIN_THREAD, ThreadRelation, ThreadStateSet


class ThreadHierarchyTracker:
    """Transfer functions for thread creation and join, plus the creation graph."""

    def __init__(self, main: str = MAIN_THREAD, logger=None):
        self.main = main
        self.logger = logger
        # creator -> created, one node per thread id
        self.creation_graph = nx.DiGraph()
        self.creation_graph.add_node(main)

    def initial_state(self) -> ThreadStateSet:
        return ThreadStateSet()

    def on_create(self, creator: str, state: ThreadStateSet, site: str,
                  self_parallel: bool = False) -> Tuple[ThreadStateSet, ThreadStateSet]:
        """Apply ``thread-create(site)`` executed by ``creator`` in ``state``.

        Returns:
            (state of the creator after the call, entry state of the new thread)
        """
        if site == self.main:
            raise ValueError(f"Creation site cannot reuse the main thread id {site!r}")

        # an instance from this site may still be running
        still_live = state.get(site) not in (None, ThreadRelation.JOINED)
        # every instance of a self-parallel creator forks its own child
        creator_parallel = state.get(creator) == ThreadRelation.SELF_PARALLEL
        if self_parallel or still_live or creator_parallel:
            if self.logger and still_live and not self_parallel:
                self.logger.log(f"Thread {site} re-created by {creator} while still live, "
                                f"marking it self-parallel", level="DEBUG")
            creator_next = state.with_entry(site, ThreadRelation.SELF_PARALLEL)
            child = state.with_entry(site, ThreadRelation.SELF_PARALLEL)
        else:
            creator_next = state.with_entry(site, ThreadRelation.PARENT)
            child = state.with_entry(site, ThreadRelation.CREATED)

        self.creation_graph.add_edge(creator, site)
        return creator_next, child

    def on_join(self, state: ThreadStateSet, site: str) -> ThreadStateSet:
        """Apply ``thread-join(site)``.

        A PARENT thread becomes JOINED. The entry stays so that later accesses
        are ordered after that thread alone, not after the threads it forked.
        Joining one instance of a SELF_PARALLEL site leaves the others running,
        and joining an unknown site or a thread on the observer's own chain
        has no effect.
        """
        relation = state.get(site)
        if relation is None:
            if self.logger:
                self.logger.log(f"Join of unknown thread {site} ignored", level="DEBUG")
            return state
        if relation != ThreadRelation.PARENT:
            return state
        return state.with_entry(site, ThreadRelation.JOINED)

    def join(self, first: ThreadStateSet, second: ThreadStateSet) -> ThreadStateSet:
        return first.join(second)

    def widen(self, previous: ThreadStateSet, current: ThreadStateSet) -> ThreadStateSet:
        """Raise every tag that still changes across a loop iteration to SELF_PARALLEL."""
        joined = previous.join(current)
        widened = joined
        for thread_id, relation in joined.items():
            old = previous.get(thread_id)
            if old is not None and old != relation:
                widened = widened.with_entry(thread_id, ThreadRelation.SELF_PARALLEL)
        return widened

    def is_ancestor(self, ancestor: str, thread_id: str) -> bool:
        if ancestor == thread_id or ancestor not in self.creation_graph \
                or thread_id not in self.creation_graph:
            return False
        return nx.has_path(self.creation_graph, ancestor, thread_id)

    def descendants(self, thread_id: str) -> Set[str]:
        if thread_id not in self.creation_graph:
            return set()
        return set(nx.descendants(self.creation_graph, thread_id))

    def forget_creations(self, creators: Iterable[str]) -> None:
        """Drop creation edges of ``creators`` before they are re-traversed."""
        creators = set(creators)
        self.creation_graph.remove_edges_from(
            [(u, v) for u, v in self.creation_graph.edges() if u in creators]
        )
        orphans = [n for n in self.creation_graph.nodes()
                   if n != self.main and n not in creators and self.creation_graph.in_degree(n) == 0]
        self.creation_graph.remove_nodes_from(orphans)

    def threads(self) -> Set[str]:
        return set(self.creation_graph.nodes())

    def creator_of(self, thread_id: str) -> Optional[str]:
        if thread_id not in self.creation_graph:
            return None
        creators = sorted(self.creation_graph.predecessors(thread_id))
        return creators[0] if creators else None
