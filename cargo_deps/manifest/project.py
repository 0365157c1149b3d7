"""Building a CrateGraph from a Cargo manifest and its lock file.

The manifest says *why* the root crate depends on something (regular, build,
dev, optional); the lock file only supplies the resolved connectivity.
"""

from pathlib import Path
from typing import Any

from cargo_deps.config import DepsConfig
from cargo_deps.errors import LockMismatchError, ManifestError
from cargo_deps.graph.dependency_graph import (
    CrateGraph,
    DepKind,
    DepKindsMap,
    RootCrate,
    RootDepsMap,
)
from cargo_deps.log_config import get_logger
from cargo_deps.manifest.loader import toml_from_file

logger = get_logger(__name__)


def add_kind(dep_kinds_map: DepKindsMap, key: str, kind: DepKind) -> None:
    """Record that dependency ``key`` was declared with ``kind``."""
    dep_kinds_map.setdefault(key, []).append(kind)


def _table(document: dict[str, Any], key: str) -> dict[str, Any]:
    """Return the sub-table ``key``, treating a missing table as empty."""
    value = document.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"Could not parse [{key}] as a table"
        raise ManifestError(msg)
    return value


def _package_name(dep_name: str, dep_spec: Any) -> str:
    """Name of the package behind a dependency entry, honoring ``package = ...`` renames."""
    if isinstance(dep_spec, dict) and isinstance(dep_spec.get("package"), str):
        return dep_spec["package"]
    return dep_name


def _entry_field(entry: dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if value is None:
        msg = f"No '{key}' field in Cargo.lock [package] or [root] table"
        raise ManifestError(msg)
    if not isinstance(value, str):
        msg = f"'{key}' field of [package] or [root] table in Cargo.lock was not a valid string"
        raise ManifestError(msg)
    return value


class Project:
    """Turns a manifest/lock pair into a sorted, kind-resolved CrateGraph."""

    def __init__(self, cfg: DepsConfig):
        """Initialize the project builder.

        Args:
            cfg: Configuration selecting the dependency kinds to walk
        """
        self.cfg = cfg

    def graph(self, manifest_path: Path, lock_path: Path) -> CrateGraph:
        """Build the complete dependency graph.

        Args:
            manifest_path: Path of the Cargo.toml
            lock_path: Path of the matching Cargo.lock

        Returns:
            A graph that is sorted, kind-resolved and duplicate-annotated

        Raises:
            ManifestError: If either document is missing or malformed
            LockMismatchError: If the documents disagree about the root crate
            CycleDetectedError: If the lock file describes a cycle
        """
        root_crates, root_deps_map = self.parse_root_deps(manifest_path)
        logger.debug(
            "root_dependencies_parsed",
            roots=[f"{root.name} {root.version}" for root in root_crates],
            declared={
                name: {dep: sorted(kind.value for kind in kinds) for dep, kinds in deps.items()}
                for name, deps in root_deps_map.items()
            },
        )

        graph = self.parse_lock_file(lock_path, root_crates, root_deps_map)

        graph.topological_sort()
        logger.debug("graph_snapshot", stage="sorted", **graph.snapshot())

        graph.set_resolved_kind()

        if not self.cfg.include_versions:
            graph.show_version_on_duplicates()

        logger.debug("graph_snapshot", stage="resolved", **graph.snapshot())
        logger.info("dependency_graph_built", **graph.get_stats())
        return graph

    def parse_root_deps(self, manifest_path: Path) -> tuple[list[RootCrate], RootDepsMap]:
        """Read the manifest and build the list of the dependencies it declares."""
        return self.root_deps_from_toml(toml_from_file(manifest_path))

    def root_deps_from_toml(self, manifest_toml: dict[str, Any]) -> tuple[list[RootCrate], RootDepsMap]:
        """Extract the root crate and its declared dependency kinds.

        Only the kinds enabled in the configuration are recorded; a dependency
        of a disabled kind is absent from the map altogether.

        Args:
            manifest_toml: Parsed Cargo.toml

        Returns:
            Tuple of (root crates, map of root name to declared dependency kinds)

        Raises:
            ManifestError: If the [package] table or its name/version is missing
        """
        package = manifest_toml.get("package")
        if package is None:
            msg = "No [package] table found"
            raise ManifestError(msg)
        if not isinstance(package, dict):
            msg = "Could not parse [package] as a table"
            raise ManifestError(msg)

        name, version = package.get("name"), package.get("version")
        if not isinstance(name, str) or not isinstance(version, str):
            msg = "No 'name' or 'version' fields in [package] table"
            raise ManifestError(msg)

        root_crate = RootCrate(name=name, version=version)

        # Platform-specific tables ([target.'cfg(unix)'.dependencies]) count
        # the same as the top-level ones.
        sections = [manifest_toml]
        sections.extend(
            section for section in _table(manifest_toml, "target").values() if isinstance(section, dict)
        )

        dep_kinds_map: DepKindsMap = {}
        for section in sections:
            self._collect_kinds(section, dep_kinds_map)

        return [root_crate], {root_crate.name: dep_kinds_map}

    def _collect_kinds(self, section: dict[str, Any], dep_kinds_map: DepKindsMap) -> None:
        for dep_name, dep_spec in _table(section, "dependencies").items():
            package_name = _package_name(dep_name, dep_spec)
            if isinstance(dep_spec, dict) and dep_spec.get("optional") is True:
                if self.cfg.optional_deps:
                    add_kind(dep_kinds_map, package_name, DepKind.OPTIONAL)
            elif self.cfg.regular_deps:
                add_kind(dep_kinds_map, package_name, DepKind.REGULAR)

        if self.cfg.build_deps:
            for dep_name, dep_spec in _table(section, "build-dependencies").items():
                add_kind(dep_kinds_map, _package_name(dep_name, dep_spec), DepKind.BUILD)

        if self.cfg.dev_deps:
            for dep_name, dep_spec in _table(section, "dev-dependencies").items():
                add_kind(dep_kinds_map, _package_name(dep_name, dep_spec), DepKind.DEV)

    def parse_lock_file(
        self,
        lock_path: Path,
        root_crates: list[RootCrate],
        root_deps_map: RootDepsMap,
    ) -> CrateGraph:
        """Read the lock file and build the graph of resolved dependencies."""
        return self.graph_from_lock(toml_from_file(lock_path), root_crates, root_deps_map)

    def graph_from_lock(
        self,
        lock_toml: dict[str, Any],
        root_crates: list[RootCrate],
        root_deps_map: RootDepsMap,
    ) -> CrateGraph:
        """Populate a CrateGraph from a parsed lock document.

        Args:
            lock_toml: Parsed Cargo.lock
            root_crates: Root crates declared by the manifest
            root_deps_map: Declared dependency kinds per root crate

        Returns:
            The populated, not yet sorted graph

        Raises:
            ManifestError: If a package entry is malformed
            LockMismatchError: If a root crate is missing or at another version
        """
        entries: list[Any] = []
        if "root" in lock_toml:
            entries.append(lock_toml["root"])
        packages = lock_toml.get("package", [])
        if not isinstance(packages, list):
            msg = "Could not parse [[package]] in Cargo.lock as an array of tables"
            raise ManifestError(msg)
        entries.extend(packages)

        for entry in entries:
            if not isinstance(entry, dict):
                msg = "Cargo.lock [package] or [root] entry is not a table"
                raise ManifestError(msg)

        locked_versions: dict[str, list[str]] = {}
        for entry in entries:
            versions = locked_versions.setdefault(_entry_field(entry, "name"), [])
            version = _entry_field(entry, "version")
            if version not in versions:
                versions.append(version)

        graph = CrateGraph(root_deps_map)
        for entry in entries:
            self._parse_package(graph, entry, root_crates, locked_versions)

        for root_crate in root_crates:
            if graph.find(root_crate.name, root_crate.version) is None:
                msg = (
                    f"Missing 'name': {root_crate.name} and 'version': "
                    f"{root_crate.version} in lock file"
                )
                raise LockMismatchError(msg)

        logger.debug("lock_file_parsed", packages=len(entries), nodes=len(graph))
        return graph

    def _parse_package(
        self,
        graph: CrateGraph,
        entry: dict[str, Any],
        root_crates: list[RootCrate],
        locked_versions: dict[str, list[str]],
    ) -> None:
        name = _entry_field(entry, "name")
        version = _entry_field(entry, "version")

        node_id = graph.find_or_add(name, version)

        declared = graph.root_deps_map.get(name)
        if declared is not None and RootCrate(name=name, version=version) not in root_crates:
            msg = (
                f"Version {version} of root crate '{name}' in Cargo.lock does not "
                f"match version specified in Cargo.toml"
            )
            raise LockMismatchError(msg)

        dependencies = entry.get("dependencies", [])
        if not isinstance(dependencies, list):
            msg = f"'dependencies' of '{name} {version}' in Cargo.lock is not an array"
            raise ManifestError(msg)

        for dep in dependencies:
            dep_name, dep_version = self._parse_dependency(dep, name, locked_versions)

            if declared is not None:
                kinds = declared.get(dep_name)
                if kinds is None:
                    # Not declared with any of the selected kinds.
                    continue
                graph.add_child(node_id, dep_name, dep_version, kinds)
            else:
                graph.add_child(node_id, dep_name, dep_version)

    @staticmethod
    def _parse_dependency(
        dep: Any,
        parent_name: str,
        locked_versions: dict[str, list[str]],
    ) -> tuple[str, str]:
        """Split a lock file dependency string into ``(name, version)``.

        Accepts ``"name version"``, ``"name version (source)"`` and the bare
        ``"name"`` used by newer lock files when only one version is locked.
        """
        tokens = dep.split() if isinstance(dep, str) else []
        if not tokens:
            msg = f"Invalid dependency {dep!r} of '{parent_name}' in Cargo.lock"
            raise ManifestError(msg)

        if len(tokens) >= 2:
            return tokens[0], tokens[1]

        versions = locked_versions.get(tokens[0], [])
        if len(versions) != 1:
            msg = (
                f"Cannot resolve dependency '{tokens[0]}' of '{parent_name}': "
                f"{len(versions)} locked versions found"
            )
            raise ManifestError(msg)
        return tokens[0], versions[0]
