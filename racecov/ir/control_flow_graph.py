"""Control flow graphs of the analysed program, one per thread function."""

import json
import networkx as nx
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from racecov.ir.models import CFGOperation, OperationKind
from racecov.utils import ProgramModelError


class ThreadFunction:
    """CFG of one function that may serve as a thread body."""

    def __init__(self, name: str, graph: nx.DiGraph, entry: str, file_path: str = "<program>"):
        if entry not in graph:
            raise ProgramModelError(f"Entry node {entry!r} is not part of function {name!r}")
        self.name = name
        self.graph = graph
        self.entry = entry
        self.file_path = file_path
        self._loop_headers: Optional[Set[str]] = None

    @classmethod
    def sequence(cls, name: str, operations: Iterable[CFGOperation],
                 file_path: str = "<program>") -> "ThreadFunction":
        """Build a straight-line function from a list of operations."""
        graph = nx.DiGraph()
        node_id = f"{name}:entry"
        graph.add_node(node_id, op=CFGOperation(OperationKind.SKIP))
        entry = previous = node_id
        for index, op in enumerate(operations):
            node_id = f"{name}:{index}"
            graph.add_node(node_id, op=op)
            graph.add_edge(previous, node_id)
            previous = node_id
        return cls(name, graph, entry, file_path)

    def operation(self, node: str) -> CFGOperation:
        return self.graph.nodes[node].get('op') or CFGOperation(OperationKind.SKIP)

    def successors(self, node: str) -> List[str]:
        return list(self.graph.successors(node))

    def predecessors(self, node: str) -> List[str]:
        return list(self.graph.predecessors(node))

    @property
    def loop_headers(self) -> Set[str]:
        """Targets of back edges (edges whose target dominates their source)."""
        if self._loop_headers is None:
            self._loop_headers = {target for _, target in self.back_edges()}
        return self._loop_headers

    def back_edges(self) -> List[Tuple[str, str]]:
        reachable = nx.descendants(self.graph, self.entry) | {self.entry}
        idom = nx.immediate_dominators(self.graph, self.entry)
        edges = []
        for source, target in self.graph.edges():
            if source not in reachable:
                continue
            # walk the dominator tree upwards from source
            node = source
            while True:
                if node == target:
                    edges.append((source, target))
                    break
                parent = idom.get(node)
                if parent is None or parent == node:
                    break
                node = parent
        return edges

    def accessed_locations(self) -> Set[str]:
        return {
            op.location for _, op in self.graph.nodes(data='op')
            if op is not None and op.is_access and op.location
        }


class ProgramCFG:
    """The set of thread functions plus the main entry point."""

    def __init__(self, main: str = "main", file_path: str = "<program>"):
        self.main = main
        self.file_path = file_path
        self.functions: Dict[str, ThreadFunction] = {}
        self.lock_aliases: Dict[str, List[str]] = {}

    def add_function(self, function: ThreadFunction) -> None:
        self.functions[function.name] = function

    def function(self, name: str) -> ThreadFunction:
        try:
            return self.functions[name]
        except KeyError:
            raise ProgramModelError(f"Unknown thread function: {name}") from None

    def creation_sites(self) -> Dict[str, str]:
        """Map each creation site to the function it starts."""
        sites = {}
        for function in self.functions.values():
            for _, op in function.graph.nodes(data='op'):
                if op is None or op.kind != OperationKind.THREAD_CREATE:
                    continue
                if sites.get(op.site, op.entry) != op.entry:
                    raise ProgramModelError(
                        f"Creation site {op.site!r} starts both {sites[op.site]} and {op.entry}")
                sites[op.site] = op.entry
        return sites

    def validate(self) -> None:
        """Check that the main function and every created entry exist."""
        self.function(self.main)
        for site, entry in self.creation_sites().items():
            if not site:
                raise ProgramModelError("Thread creation without a site identifier")
            if site == self.main:
                raise ProgramModelError(f"Creation site may not reuse the main thread id {site!r}")
            self.function(entry)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            'num_functions': len(self.functions),
            'num_nodes': sum(f.graph.number_of_nodes() for f in self.functions.values()),
            'num_edges': sum(f.graph.number_of_edges() for f in self.functions.values()),
            'num_creation_sites': len(self.creation_sites()),
            'num_loops': sum(len(f.loop_headers) for f in self.functions.values()),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgramCFG":
        """Load the JSON program description produced by the front-end.

        Expected shape::

            {"file": "sample.c", "main": "main",
             "functions": {"main": {"nodes": [{"id": "n0", "op": "write", "var": "g", "line": 3}, ...],
                                    "edges": [["n0", "n1"], ...], "entry": "n0"}},
             "aliases": {"p": ["m1", "m2"]}}

        Without ``edges`` the nodes form a straight line in list order.
        """
        if not isinstance(data, dict) or 'functions' not in data:
            raise ProgramModelError("Program description needs a 'functions' table")
        program = cls(main=data.get('main', 'main'), file_path=data.get('file', '<program>'))
        for name, body in data['functions'].items():
            program.add_function(_function_from_dict(name, body, program.file_path))
        program.lock_aliases = {k: list(v) for k, v in data.get('aliases', {}).items()}
        program.validate()
        return program

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "ProgramCFG":
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ProgramModelError(f"Invalid program description {path}: {e}") from e
        data.setdefault('file', str(path))
        return cls.from_dict(data)


def _function_from_dict(name: str, body: Dict[str, Any], file_path: str) -> ThreadFunction:
    nodes = body.get('nodes', [])
    graph = nx.DiGraph()
    order = []
    for index, node in enumerate(nodes):
        node_id = str(node.get('id', f"{name}:{index}"))
        try:
            op = CFGOperation.from_dict(node)
        except ValueError as e:
            raise ProgramModelError(f"Bad node {node_id!r} in {name}: {e}") from e
        _check_operation(name, node_id, op)
        graph.add_node(node_id, op=op)
        order.append(node_id)

    if not order:
        node_id = f"{name}:entry"
        graph.add_node(node_id, op=CFGOperation(OperationKind.SKIP))
        order.append(node_id)

    if 'edges' in body:
        for edge in body['edges']:
            source, target = str(edge[0]), str(edge[1])
            if source not in graph or target not in graph:
                raise ProgramModelError(f"Edge {source}->{target} in {name} references an unknown node")
            graph.add_edge(source, target)
    else:
        nx.add_path(graph, order)

    entry = str(body.get('entry', order[0]))
    return ThreadFunction(name, graph, entry, file_path)


def _check_operation(function: str, node_id: str, op: CFGOperation) -> None:
    if op.is_access and not op.location:
        raise ProgramModelError(f"Access node {node_id!r} in {function} has no location")
    if op.kind in (OperationKind.LOCK, OperationKind.UNLOCK) and not op.handle:
        raise ProgramModelError(f"Lock node {node_id!r} in {function} has no handle")
    if op.kind == OperationKind.THREAD_CREATE and not (op.site and op.entry):
        raise ProgramModelError(f"Thread creation {node_id!r} in {function} needs a site and an entry")
    if op.kind == OperationKind.THREAD_JOIN and not op.site:
        raise ProgramModelError(f"Thread join {node_id!r} in {function} has no site")
