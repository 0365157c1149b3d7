"""cargo-deps: render a crate's dependency graph as Graphviz dot."""

__version__ = "0.1.0"
