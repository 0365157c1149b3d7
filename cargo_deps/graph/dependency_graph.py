"""Crate dependency graph with cycle-safe topological sorting.

Nodes are stored in a list and addressed by integer index, with a side table
mapping ``(name, version)`` to that index. Edges point from the dependent
crate to its dependency and carry the set of dependency kinds through which
the dependency is reached.

The graph is built in three strictly sequential stages after population:
``topological_sort()``, then ``set_resolved_kind()``, then
``show_version_on_duplicates()``.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from cargo_deps.errors import CargoDepsError

logger = structlog.get_logger(__name__)


class DepKind(Enum):
    """Why a dependency edge exists."""

    REGULAR = "regular"
    BUILD = "build"
    DEV = "dev"
    OPTIONAL = "optional"


# Dominant kind first: a crate reached both as a regular and a dev dependency
# is drawn as regular.
KIND_PRIORITY: tuple[DepKind, ...] = (
    DepKind.REGULAR,
    DepKind.OPTIONAL,
    DepKind.BUILD,
    DepKind.DEV,
)

# Map of dependency names to the kinds they were declared with.
DepKindsMap = dict[str, list[DepKind]]
# Map of root crate names to their declared dependency kinds.
RootDepsMap = dict[str, DepKindsMap]


def dominant_kind(kinds: Iterable[DepKind]) -> DepKind | None:
    """Return the highest-priority kind in ``kinds``, or None if empty."""
    present = set(kinds)
    for kind in KIND_PRIORITY:
        if kind in present:
            return kind
    return None


@dataclass(frozen=True)
class RootCrate:
    """The package declared by a manifest itself."""

    name: str
    version: str


@dataclass
class Node:
    """A single crate at a single version.

    Attributes:
        id: Index of the node in the graph's node list
        name: Crate name
        version: Locked crate version
        resolved_kinds: Union of the kinds of all incoming edges
        duplicate: True when another node has the same name and another version
        is_root: True for the manifest's own crates
    """

    id: int
    name: str
    version: str
    resolved_kinds: set[DepKind] = field(default_factory=set)
    duplicate: bool = False
    is_root: bool = False

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


@dataclass
class Edge:
    """Directed edge from a dependent crate to one of its dependencies."""

    parent: int
    child: int
    kinds: set[DepKind] = field(default_factory=set)


class CycleDetectedError(CargoDepsError):
    """Exception raised when a cycle is detected in the dependency graph.

    Attributes:
        message: Description of the cycle
        cycle: Crates forming the cycle as ``"name version"`` strings, with the
            first crate repeated at the end
    """

    def __init__(self, message: str, cycle: list[str] | None = None):
        super().__init__(message)
        self.cycle = cycle or []


_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


class CrateGraph:
    """Dependency graph of locked crates.

    This class is NOT thread-safe; it is built and consumed by a single
    pipeline.

    Example:
        >>> graph = CrateGraph({"app": {"log": [DepKind.REGULAR]}})
        >>> app = graph.find_or_add("app", "0.1.0")
        >>> graph.add_child(app, "log", "0.4.20")
        1
        >>> graph.topological_sort()
        [0, 1]
        >>> graph.set_resolved_kind()
        >>> graph.nodes[1].resolved_kinds
        {<DepKind.REGULAR: 'regular'>}
    """

    def __init__(self, root_deps_map: RootDepsMap | None = None):
        """Initialize an empty graph.

        Args:
            root_deps_map: Declared dependency kinds per root crate name
        """
        self.nodes: list[Node] = []
        self.edges: list[Edge] = []
        self.root_deps_map: RootDepsMap = root_deps_map if root_deps_map is not None else {}
        self.order: list[int] | None = None
        self._index: dict[tuple[str, str], int] = {}
        self._edge_index: dict[tuple[int, int], int] = {}
        self._out_edges: list[list[int]] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def find(self, name: str, version: str) -> int | None:
        """Look up the id of the node with exactly this name and version."""
        return self._index.get((name, version))

    def find_or_add(self, name: str, version: str) -> int:
        """Return the id of the ``(name, version)`` node, creating it if needed.

        Args:
            name: Crate name
            version: Crate version

        Returns:
            The stable id of the node
        """
        node_id = self._index.get((name, version))
        if node_id is not None:
            return node_id

        node_id = len(self.nodes)
        self.nodes.append(Node(id=node_id, name=name, version=version))
        self._out_edges.append([])
        self._index[(name, version)] = node_id
        self.order = None
        return node_id

    def add_child(
        self,
        parent_id: int,
        dep_name: str,
        dep_version: str,
        kinds: Iterable[DepKind] = (),
    ) -> int:
        """Add an edge from ``parent_id`` to the ``(dep_name, dep_version)`` node.

        Adding the same edge again merges ``kinds`` into the existing edge.

        Args:
            parent_id: Id of the dependent crate
            dep_name: Name of the dependency
            dep_version: Locked version of the dependency
            kinds: Kinds known for this edge at build time

        Returns:
            Id of the child node
        """
        child_id = self.find_or_add(dep_name, dep_version)

        edge_idx = self._edge_index.get((parent_id, child_id))
        if edge_idx is None:
            edge_idx = len(self.edges)
            self.edges.append(Edge(parent=parent_id, child=child_id))
            self._edge_index[(parent_id, child_id)] = edge_idx
            self._out_edges[parent_id].append(edge_idx)
            self.order = None

        self.edges[edge_idx].kinds.update(kinds)
        return child_id

    def out_edges(self, node_id: int) -> list[Edge]:
        """Edges leaving ``node_id``, in insertion order."""
        return [self.edges[idx] for idx in self._out_edges[node_id]]

    def children(self, node_id: int) -> list[int]:
        """Ids of the direct dependencies of ``node_id``, in insertion order."""
        return [self.edges[idx].child for idx in self._out_edges[node_id]]

    def topological_sort(self) -> list[int]:
        """Order nodes so that every dependent precedes its dependencies.

        Uses an iterative depth-first search with three-color marking. Nodes
        and children are explored in reverse insertion order, so the reversed
        post-order keeps independent nodes in their insertion order and the
        result is identical for identical input.

        Returns:
            Node ids, dependents before dependencies. Also stored in ``order``.

        Raises:
            CycleDetectedError: If the graph contains a cycle
        """
        state = [_UNVISITED] * len(self.nodes)
        post_order: list[int] = []

        for start in reversed(range(len(self.nodes))):
            if state[start] != _UNVISITED:
                continue

            state[start] = _IN_PROGRESS
            stack = [(start, iter(reversed(self.children(start))))]

            while stack:
                node_id, pending = stack[-1]
                for child_id in pending:
                    if state[child_id] == _UNVISITED:
                        state[child_id] = _IN_PROGRESS
                        stack.append((child_id, iter(reversed(self.children(child_id)))))
                        break
                    if state[child_id] == _IN_PROGRESS:
                        self._raise_cycle([entry[0] for entry in stack], child_id)
                else:
                    state[node_id] = _DONE
                    post_order.append(node_id)
                    stack.pop()

        self.order = post_order[::-1]
        logger.debug(
            "dependency_graph_sorted",
            node_count=len(self.nodes),
            edge_count=len(self.edges),
        )
        return list(self.order)

    def _raise_cycle(self, path: list[int], repeated: int) -> None:
        start = path.index(repeated)
        cycle = [str(self.nodes[node_id]) for node_id in [*path[start:], repeated]]
        msg = f"Cycle detected in dependency graph: {' -> '.join(cycle)}"
        logger.error("cycle_detected_in_graph", cycle=cycle)
        raise CycleDetectedError(msg, cycle)

    def set_resolved_kind(self) -> None:
        """Resolve the effective kinds of every edge and node.

        Edges leaving a root crate take the kinds the root declared for the
        dependency. Every other edge inherits the resolved kinds of its parent,
        so a crate reached through a build dependency is itself a build
        dependency. A node's resolved kinds are the union of its incoming
        edges' kinds. Nodes are visited in topological order, so a parent is
        fully resolved before its children.

        Raises:
            RuntimeError: If called before ``topological_sort()``
        """
        if self.order is None:
            msg = "topological_sort() must be called before set_resolved_kind()"
            raise RuntimeError(msg)

        for node in self.nodes:
            node.resolved_kinds = set()
            node.is_root = node.name in self.root_deps_map

        for parent_id in self.order:
            parent = self.nodes[parent_id]
            for edge in self.out_edges(parent_id):
                child = self.nodes[edge.child]
                if parent.is_root:
                    edge.kinds.update(self.root_deps_map[parent.name].get(child.name, ()))
                else:
                    edge.kinds.update(parent.resolved_kinds)
                child.resolved_kinds.update(edge.kinds)

        logger.debug(
            "dependency_kinds_resolved",
            unresolved=[str(node) for node in self.nodes if not node.is_root and not node.resolved_kinds],
        )

    def show_version_on_duplicates(self) -> None:
        """Flag every node whose name is locked at more than one version."""
        versions_by_name: dict[str, set[str]] = defaultdict(set)
        for node in self.nodes:
            versions_by_name[node.name].add(node.version)

        for node in self.nodes:
            node.duplicate = len(versions_by_name[node.name]) > 1

        duplicates = sorted(name for name, versions in versions_by_name.items() if len(versions) > 1)
        if duplicates:
            logger.info("duplicate_crate_versions", crates=duplicates)

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the current graph state.

        Returns:
            Dictionary with node, edge, root and duplicate counts
        """
        return {
            "total_nodes": len(self.nodes),
            "total_edges": len(self.edges),
            "root_nodes": sum(1 for node in self.nodes if node.is_root),
            "duplicate_nodes": sum(1 for node in self.nodes if node.duplicate),
        }

    def snapshot(self) -> dict[str, Any]:
        """Plain-data dump of the graph, used for debug logging."""
        order = self.order if self.order is not None else range(len(self.nodes))
        return {
            "nodes": [str(self.nodes[node_id]) for node_id in order],
            "edges": [
                {
                    "from": str(self.nodes[edge.parent]),
                    "to": str(self.nodes[edge.child]),
                    "kinds": sorted(kind.value for kind in edge.kinds),
                }
                for edge in self.edges
            ],
        }
