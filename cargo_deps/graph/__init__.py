"""Graph module for crate dependency graphs and their dot rendering."""

from cargo_deps.graph.dependency_graph import (
    CrateGraph,
    CycleDetectedError,
    DepKind,
    Edge,
    Node,
    RootCrate,
    RootDepsMap,
)
from cargo_deps.graph.renderer import DotRenderer

__all__ = [
    "CrateGraph",
    "CycleDetectedError",
    "DepKind",
    "DotRenderer",
    "Edge",
    "Node",
    "RootCrate",
    "RootDepsMap",
]
