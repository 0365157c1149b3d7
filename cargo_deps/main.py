"""Main Entry Point and CLI Integration.

This module provides the ``cargo-deps`` command. It loads configuration,
locates Cargo.toml and Cargo.lock, builds the dependency graph and writes it
as a Graphviz dot document to stdout or a file.
"""

import argparse
import sys
from pathlib import Path

from cargo_deps import __version__
from cargo_deps.config import DepsConfig, load_config
from cargo_deps.errors import CargoDepsError
from cargo_deps.graph.renderer import DotRenderer
from cargo_deps.log_config import bind_context, clear_context, configure_logging, get_logger
from cargo_deps.manifest.loader import check_manifest_name, find_lock_file, find_manifest_file
from cargo_deps.manifest.project import Project

logger = get_logger(__name__)


def report_error(message: str) -> None:
    """Print a fatal error for the user, independent of the logging level."""
    print(f"error: {message}", file=sys.stderr)


def render_dependencies(cfg: DepsConfig) -> None:
    """Build the dependency graph described by ``cfg`` and write it out.

    Args:
        cfg: Fully resolved configuration

    Raises:
        CargoDepsError: If the documents are missing, malformed, inconsistent
            or cyclic
        OSError: If the output file cannot be written
    """
    check_manifest_name(cfg.manifest_path)
    manifest_path = find_manifest_file(cfg.manifest_path)
    # Cargo.lock lives next to Cargo.toml or, in a workspace, in a parent directory.
    lock_path = find_lock_file(manifest_path)

    bind_context(manifest=str(manifest_path))
    logger.info("graphing_project", lock_file=str(lock_path))

    graph = Project(cfg).graph(manifest_path, lock_path)
    renderer = DotRenderer(cfg)

    if cfg.dot_file is None:
        renderer.render_to(graph, sys.stdout)
        sys.stdout.flush()
    else:
        with Path(cfg.dot_file).open("w", encoding="utf-8") as f:
            renderer.render_to(graph, f)
        logger.info("dot_file_written", path=cfg.dot_file)


def execute(args: argparse.Namespace) -> int:
    """Run cargo-deps for parsed command-line arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    configure_logging(args.log_level or "WARNING")

    try:
        cfg = DepsConfig.from_args(args, load_config(args.config))
    except FileNotFoundError as e:
        logger.error("configuration_file_not_found", error=str(e))
        report_error(str(e))
        return 1
    except ValueError as e:
        logger.error("configuration_validation_error", error=str(e))
        report_error(str(e))
        return 1

    configure_logging(cfg.logging_level)

    try:
        render_dependencies(cfg)
    except CargoDepsError as e:
        logger.error("cargo_deps_failed", error=e.message, error_type=type(e).__name__)
        report_error(e.message)
        return 1
    except OSError as e:
        logger.error("output_write_failed", error=str(e), path=cfg.dot_file)
        report_error(str(e))
        return 1
    finally:
        clear_context()

    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    A leading ``deps`` token is dropped so the command also works when invoked
    by cargo as ``cargo deps``.

    Args:
        argv: Arguments without the program name; ``sys.argv[1:]`` when None

    Returns:
        Parsed arguments namespace
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv[:1] == ["deps"]:
        argv = argv[1:]

    parser = argparse.ArgumentParser(
        prog="cargo-deps",
        description="Render the dependency graph of a Cargo project as Graphviz dot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Graph the crate in the current directory
  cargo deps | dot -Tpng > graph.png

  # Include build and dev dependencies, write to a file
  cargo deps --build-deps --dev-deps -o deps.dot

  # Only show some crates, grouped in a labelled cluster
  cargo deps --filter serde serde_json itoa --subgraph serde --subgraph-name core
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-o",
        "--dot-file",
        metavar="PATH",
        help="Output file (default: stdout)",
    )
    parser.add_argument(
        "--manifest-path",
        metavar="PATH",
        help="Specify location of manifest file (default: Cargo.toml)",
    )
    parser.add_argument(
        "--filter",
        nargs="+",
        metavar="DEPNAME",
        help="Only display provided deps",
    )
    parser.add_argument(
        "--include-orphans",
        action="store_true",
        help="Don't purge orphan nodes (yellow). This is useful in some workspaces",
    )
    parser.add_argument(
        "-I",
        "--include-versions",
        action="store_true",
        help="Include the dependency version on nodes",
    )
    parser.add_argument(
        "--subgraph",
        nargs="+",
        metavar="DEPNAME",
        help="Group provided deps in their own subgraph",
    )
    parser.add_argument(
        "--subgraph-name",
        metavar="NAME",
        help="Optional name of subgraph (requires --subgraph)",
    )
    parser.add_argument(
        "--all-deps",
        action="store_true",
        help="Include all dependencies in the graph. Can be used with --no-regular-deps",
    )
    parser.add_argument(
        "--no-regular-deps",
        action="store_true",
        help="Exclude regular dependencies from the graph",
    )
    parser.add_argument(
        "--build-deps",
        action="store_true",
        help="Include build dependencies in the graph (purple)",
    )
    parser.add_argument(
        "--dev-deps",
        action="store_true",
        help="Include dev dependencies in the graph (blue)",
    )
    parser.add_argument(
        "--optional-deps",
        action="store_true",
        help="Include optional dependencies in the graph (red)",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Optional YAML configuration file",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug output (DEBUG level)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (default: WARNING)",
    )

    args = parser.parse_args(argv)

    if args.debug:
        args.log_level = "DEBUG"

    return args


def main(argv: list[str] | None = None) -> None:
    """Main entry point: parse arguments, run, and exit with the result code."""
    sys.exit(execute(parse_args(argv)))


if __name__ == "__main__":
    main()
