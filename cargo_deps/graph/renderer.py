"""Graphviz dot rendering of a resolved crate graph.

Filtering and orphan pruning happen here, over the already-built graph; the
graph itself is never modified.
"""

import io
from typing import TextIO

import structlog

from cargo_deps.config import DepsConfig
from cargo_deps.graph.dependency_graph import CrateGraph, DepKind, Edge, Node, dominant_kind

logger = structlog.get_logger(__name__)

KIND_COLORS: dict[DepKind, str] = {
    DepKind.BUILD: "purple",
    DepKind.DEV: "blue",
    DepKind.OPTIONAL: "red",
}
ORPHAN_COLOR = "yellow"
SUBGRAPH_COLOR = "brown"


def escape_dot_string(s: str) -> str:
    """Escape backslashes and double quotes for a quoted DOT string."""
    return s.replace("\\", "\\\\").replace('"', '\\"')


def format_attrs(attrs: list[tuple[str, str]]) -> str:
    """Format a DOT attribute list, or an empty string when there is none."""
    if not attrs:
        return ""
    return " [" + ",".join(f"{key}={value}" for key, value in attrs) + "]"


class DotRenderer:
    """Writes a CrateGraph as a Graphviz ``digraph``.

    Usage::

        graph = Project(cfg).graph(manifest_path, lock_path)
        DotRenderer(cfg).render_to(graph, sys.stdout)

    A root ``app`` depending on ``log`` renders as ``N0 [label="app",shape=box]``,
    ``N1 [label="log"]`` and ``N0 -> N1`` inside ``digraph dependencies {...}``.
    """

    def __init__(self, cfg: DepsConfig):
        """Initialize the renderer.

        Args:
            cfg: Configuration with filter, subgraph and label options
        """
        self.cfg = cfg

    def render(self, graph: CrateGraph) -> str:
        """Render the graph and return the dot document."""
        buffer = io.StringIO()
        self.render_to(graph, buffer)
        return buffer.getvalue()

    def render_to(self, graph: CrateGraph, output: TextIO) -> None:
        """Write the dot document for ``graph`` to ``output``.

        Args:
            graph: A sorted and kind-resolved graph
            output: Text sink, e.g. ``sys.stdout`` or an open file
        """
        order = graph.order if graph.order is not None else list(range(len(graph.nodes)))
        allowed = {node.id for node in graph.nodes if self._passes_filter(node)}

        edges = [
            edge
            for parent_id in order
            for edge in graph.out_edges(parent_id)
            if edge.kinds and edge.parent in allowed and edge.child in allowed
        ]
        connected = {edge.parent for edge in edges} | {edge.child for edge in edges}

        if self.cfg.include_orphans:
            kept = [node_id for node_id in order if node_id in allowed]
        else:
            kept = [node_id for node_id in order if node_id in connected]

        output.write("digraph dependencies {\n")

        for node_id in kept:
            node = graph.nodes[node_id]
            output.write(f"\tN{node_id}{self._node_attrs(node, orphan=node_id not in connected)};\n")

        if self.cfg.subgraph is not None:
            self._write_subgraph(graph, kept, output)

        for edge in edges:
            output.write(f"\tN{edge.parent} -> N{edge.child}{self._edge_attrs(edge)};\n")

        output.write("}\n")

        logger.debug(
            "graph_rendered",
            node_count=len(kept),
            edge_count=len(edges),
            pruned=len(allowed) - len(kept),
        )

    def _passes_filter(self, node: Node) -> bool:
        return self.cfg.filter is None or node.name in self.cfg.filter

    def _label(self, node: Node) -> str:
        if self.cfg.include_versions or node.duplicate:
            return f"{node.name} {node.version}"
        return node.name

    def _node_attrs(self, node: Node, orphan: bool) -> str:
        attrs = [("label", f'"{escape_dot_string(self._label(node))}"')]
        if node.is_root:
            attrs.append(("shape", "box"))
        if orphan:
            attrs.append(("color", ORPHAN_COLOR))
        elif not node.is_root:
            color = KIND_COLORS.get(dominant_kind(node.resolved_kinds))
            if color:
                attrs.append(("color", color))
        return format_attrs(attrs)

    def _edge_attrs(self, edge: Edge) -> str:
        kind = dominant_kind(edge.kinds)
        attrs = []
        if kind in KIND_COLORS:
            attrs.append(("color", KIND_COLORS[kind]))
        if kind is DepKind.OPTIONAL:
            attrs.append(("style", "dashed"))
        return format_attrs(attrs)

    def _write_subgraph(self, graph: CrateGraph, kept: list[int], output: TextIO) -> None:
        members = [node_id for node_id in kept if graph.nodes[node_id].name in self.cfg.subgraph]
        if not members:
            logger.warning("subgraph_empty", crates=list(self.cfg.subgraph))
            return

        output.write("\tsubgraph cluster_subgraph {\n")
        if self.cfg.subgraph_name is not None:
            output.write(f'\t\tlabel="{escape_dot_string(self.cfg.subgraph_name)}";\n')
        output.write(f"\t\tcolor={SUBGRAPH_COLOR};\n")
        output.write(f"\t\tfontcolor={SUBGRAPH_COLOR};\n")
        for node_id in members:
            output.write(f"\t\tN{node_id};\n")
        output.write("\t}\n")
