"""Tests for building a CrateGraph from Cargo.toml and Cargo.lock documents."""

from pathlib import Path

import pytest

from cargo_deps.config import DepsConfig
from cargo_deps.errors import LockMismatchError, ManifestError
from cargo_deps.graph.dependency_graph import CrateGraph, CycleDetectedError, DepKind, RootCrate
from cargo_deps.manifest.project import Project

MANIFEST = {
    "package": {"name": "app", "version": "0.1.0"},
    "dependencies": {
        "log": "0.4",
        "serde": {"version": "1.0", "optional": True},
        "rand": {"version": "0.8", "optional": False},
    },
    "build-dependencies": {"cc": "1.0"},
    "dev-dependencies": {"tempfile": "3", "log": "0.4"},
}

LOCK = {
    "package": [
        {"name": "app", "version": "0.1.0", "dependencies": ["cc", "log", "rand", "serde", "tempfile"]},
        {"name": "cc", "version": "1.0.83"},
        {"name": "log", "version": "0.4.20"},
        {"name": "rand", "version": "0.8.5", "dependencies": ["rand_core"]},
        {"name": "rand_core", "version": "0.6.4"},
        {"name": "serde", "version": "1.0.190"},
        {"name": "tempfile", "version": "3.8.1", "dependencies": ["fastrand"]},
        {"name": "fastrand", "version": "2.0.1"},
    ],
}


def node(graph: CrateGraph, name: str, version: str):
    node_id = graph.find(name, version)
    assert node_id is not None, f"{name} {version} missing"
    return graph.nodes[node_id]


class TestRootDeps:
    """Test extraction of the root crate and its declared dependency kinds."""

    def test_default_kinds(self):
        """Test that only regular dependencies are recorded by default."""
        roots, root_deps = Project(DepsConfig()).root_deps_from_toml(MANIFEST)

        assert roots == [RootCrate(name="app", version="0.1.0")]
        assert root_deps == {"app": {"log": [DepKind.REGULAR], "rand": [DepKind.REGULAR]}}

    def test_all_kinds(self):
        """Test that every selected kind is recorded, accumulating per crate."""
        cfg = DepsConfig(build_deps=True, dev_deps=True, optional_deps=True)

        _, root_deps = Project(cfg).root_deps_from_toml(MANIFEST)

        assert root_deps["app"] == {
            "log": [DepKind.REGULAR, DepKind.DEV],
            "serde": [DepKind.OPTIONAL],
            "rand": [DepKind.REGULAR],
            "cc": [DepKind.BUILD],
            "tempfile": [DepKind.DEV],
        }

    def test_optional_dependency_excluded_when_disabled(self):
        """Test that a disabled optional dependency is absent from the map."""
        _, root_deps = Project(DepsConfig()).root_deps_from_toml(MANIFEST)

        assert "serde" not in root_deps["app"]

    def test_no_regular_deps(self):
        """Test that regular dependencies can be switched off."""
        cfg = DepsConfig(regular_deps=False, dev_deps=True)

        _, root_deps = Project(cfg).root_deps_from_toml(MANIFEST)

        assert root_deps["app"] == {"tempfile": [DepKind.DEV], "log": [DepKind.DEV]}

    def test_missing_tables_mean_no_dependencies(self):
        """Test that a manifest without dependency tables is valid."""
        manifest = {"package": {"name": "app", "version": "0.1.0"}}

        _, root_deps = Project(DepsConfig(dev_deps=True, build_deps=True)).root_deps_from_toml(manifest)

        assert root_deps == {"app": {}}

    def test_renamed_dependency_uses_package_name(self):
        """Test that `package = ...` renames map to the real crate name."""
        manifest = {
            "package": {"name": "app", "version": "0.1.0"},
            "dependencies": {"rand07": {"package": "rand", "version": "0.7"}},
        }

        _, root_deps = Project(DepsConfig()).root_deps_from_toml(manifest)

        assert root_deps["app"] == {"rand": [DepKind.REGULAR]}

    def test_target_specific_dependencies(self):
        """Test that [target.*] dependency tables are included."""
        manifest = {
            "package": {"name": "app", "version": "0.1.0"},
            "target": {
                "cfg(unix)": {"dependencies": {"libc": "0.2"}},
                "cfg(windows)": {"dev-dependencies": {"winapi": "0.3"}},
            },
        }

        _, root_deps = Project(DepsConfig(dev_deps=True)).root_deps_from_toml(manifest)

        assert root_deps["app"] == {"libc": [DepKind.REGULAR], "winapi": [DepKind.DEV]}

    @pytest.mark.parametrize(
        ("manifest", "message"),
        [
            ({}, "No \\[package\\] table found"),
            ({"package": "app"}, "Could not parse \\[package\\] as a table"),
            ({"package": {"name": "app"}}, "No 'name' or 'version' fields"),
            ({"package": {"version": "1.0.0"}}, "No 'name' or 'version' fields"),
            (
                {"package": {"name": "app", "version": "1.0.0"}, "dependencies": ["log"]},
                "Could not parse \\[dependencies\\] as a table",
            ),
        ],
    )
    def test_malformed_manifest(self, manifest, message):
        """Test that malformed manifests are rejected."""
        with pytest.raises(ManifestError, match=message):
            Project(DepsConfig()).root_deps_from_toml(manifest)


class TestLockFile:
    """Test graph construction from the lock document."""

    @pytest.fixture
    def project(self) -> Project:
        return Project(DepsConfig())

    def build(self, project: Project, manifest=MANIFEST, lock=LOCK) -> CrateGraph:
        roots, root_deps = project.root_deps_from_toml(manifest)
        return project.graph_from_lock(lock, roots, root_deps)

    def test_root_appears_once_with_matching_version(self, project):
        """Test that the root crate is exactly one node at the manifest version."""
        graph = self.build(project)

        roots = [n for n in graph.nodes if n.name == "app"]
        assert len(roots) == 1
        assert roots[0].version == "0.1.0"

    def test_undeclared_root_edges_are_skipped(self, project):
        """Test that the root only links to dependencies of selected kinds."""
        graph = self.build(project)
        app = graph.find("app", "0.1.0")

        children = {graph.nodes[child].name for child in graph.children(app)}

        assert children == {"log", "rand"}

    def test_root_edges_carry_declared_kinds(self):
        """Test that root edges are created with the manifest's kinds."""
        project = Project(DepsConfig(dev_deps=True))
        graph = self.build(project)
        app = graph.find("app", "0.1.0")

        kinds = {graph.nodes[edge.child].name: edge.kinds for edge in graph.out_edges(app)}

        assert kinds["log"] == {DepKind.REGULAR, DepKind.DEV}
        assert kinds["tempfile"] == {DepKind.DEV}

    def test_bare_names_resolve_to_locked_version(self, project):
        """Test that `"name"` dependency strings use the single locked version."""
        graph = self.build(project)
        rand = graph.find("rand", "0.8.5")

        assert graph.children(rand) == [graph.find("rand_core", "0.6.4")]

    def test_versioned_and_sourced_dependency_strings(self, project):
        """Test `"name version"` and `"name version (source)"` strings."""
        lock = {
            "package": [
                {
                    "name": "app",
                    "version": "0.1.0",
                    "dependencies": [
                        "log 0.4.20",
                        "rand 0.8.5 (registry+https://github.com/rust-lang/crates.io-index)",
                    ],
                },
                {"name": "log", "version": "0.4.20"},
                {"name": "rand", "version": "0.8.5"},
            ],
        }

        graph = self.build(project, lock=lock)

        assert graph.find("rand", "0.8.5") is not None
        assert len(graph.edges) == 2

    def test_legacy_root_entry(self, project):
        """Test lock files with a [root] table instead of a root package entry."""
        lock = {
            "root": {"name": "app", "version": "0.1.0", "dependencies": ["log 0.4.20"]},
            "package": [{"name": "log", "version": "0.4.20"}],
        }

        graph = self.build(project, lock=lock)

        assert graph.find("app", "0.1.0") == 0
        assert graph.children(0) == [graph.find("log", "0.4.20")]

    def test_root_version_mismatch(self, project):
        """Test that a root crate at another version in the lock file is fatal."""
        lock = {"package": [{"name": "app", "version": "0.2.0"}]}

        with pytest.raises(LockMismatchError, match="Version 0.2.0 of root crate 'app'"):
            self.build(project, lock=lock)

    def test_root_missing_from_lock(self, project):
        """Test that a lock file without the root crate is fatal."""
        lock = {"package": [{"name": "log", "version": "0.4.20"}]}

        with pytest.raises(LockMismatchError, match="Missing 'name': app and 'version': 0.1.0"):
            self.build(project, lock=lock)

    def test_empty_lock(self, project):
        """Test that a lock file without packages cannot contain the root."""
        with pytest.raises(LockMismatchError):
            self.build(project, lock={})

    @pytest.mark.parametrize(
        ("lock", "message"),
        [
            ({"package": [{"version": "0.1.0"}]}, "No 'name' field"),
            ({"package": [{"name": "app"}]}, "No 'version' field"),
            ({"package": [{"name": "app", "version": 1}]}, "was not a valid string"),
            ({"package": ["app"]}, "is not a table"),
            ({"package": {"name": "app"}}, "array of tables"),
            (
                {"package": [{"name": "app", "version": "0.1.0", "dependencies": "log"}]},
                "is not an array",
            ),
            (
                {"package": [{"name": "app", "version": "0.1.0", "dependencies": [""]}]},
                "Invalid dependency",
            ),
        ],
    )
    def test_malformed_lock(self, project, lock, message):
        """Test that malformed lock entries are rejected."""
        with pytest.raises(ManifestError, match=message):
            self.build(project, lock=lock)

    def test_ambiguous_bare_name(self, project):
        """Test that a bare name locked at several versions cannot be resolved."""
        lock = {
            "package": [
                {"name": "app", "version": "0.1.0", "dependencies": ["log"]},
                {"name": "log", "version": "0.3.9"},
                {"name": "log", "version": "0.4.20"},
            ],
        }

        with pytest.raises(ManifestError, match="2 locked versions found"):
            self.build(project, lock=lock)


class TestProjectGraph:
    """Test the full pipeline from files on disk."""

    def write_project(self, tmp_path: Path, manifest: str, lock: str) -> tuple[Path, Path]:
        manifest_path = tmp_path / "Cargo.toml"
        lock_path = tmp_path / "Cargo.lock"
        manifest_path.write_text(manifest)
        lock_path.write_text(lock)
        return manifest_path, lock_path

    def test_graph_is_sorted_and_resolved(self, tmp_path):
        """Test that graph() sorts, resolves kinds and marks duplicates."""
        manifest_path, lock_path = self.write_project(
            tmp_path,
            """
[package]
name = "app"
version = "0.1.0"

[dependencies]
rand = "0.8"
rand_core = "0.5"

[build-dependencies]
cc = "1.0"
""",
            """
version = 3

[[package]]
name = "app"
version = "0.1.0"
dependencies = ["cc", "rand", "rand_core 0.5.1"]

[[package]]
name = "cc"
version = "1.0.83"

[[package]]
name = "rand"
version = "0.8.5"
dependencies = ["rand_core 0.6.4"]

[[package]]
name = "rand_core"
version = "0.5.1"

[[package]]
name = "rand_core"
version = "0.6.4"
""",
        )

        graph = Project(DepsConfig(build_deps=True)).graph(manifest_path, lock_path)

        assert graph.order is not None
        assert graph.order[0] == graph.find("app", "0.1.0")
        assert node(graph, "app", "0.1.0").is_root
        assert node(graph, "cc", "1.0.83").resolved_kinds == {DepKind.BUILD}
        assert node(graph, "rand_core", "0.6.4").resolved_kinds == {DepKind.REGULAR}
        assert node(graph, "rand_core", "0.6.4").duplicate
        assert node(graph, "rand_core", "0.5.1").duplicate
        assert not node(graph, "rand", "0.8.5").duplicate

    def test_include_versions_skips_duplicate_marking(self, tmp_path):
        """Test that duplicates are not computed when every label has a version."""
        manifest_path, lock_path = self.write_project(
            tmp_path,
            '[package]\nname = "app"\nversion = "0.1.0"\n',
            """
[[package]]
name = "app"
version = "0.1.0"

[[package]]
name = "log"
version = "0.3.9"

[[package]]
name = "log"
version = "0.4.20"
""",
        )

        graph = Project(DepsConfig(include_versions=True)).graph(manifest_path, lock_path)

        assert not any(n.duplicate for n in graph.nodes)

    def test_cycle_in_lock_file(self, tmp_path):
        """Test that a cyclic lock file fails graph construction."""
        manifest_path, lock_path = self.write_project(
            tmp_path,
            '[package]\nname = "app"\nversion = "0.1.0"\n\n[dependencies]\na = "1"\n',
            """
[[package]]
name = "app"
version = "0.1.0"
dependencies = ["a 1.0.0"]

[[package]]
name = "a"
version = "1.0.0"
dependencies = ["b 1.0.0"]

[[package]]
name = "b"
version = "1.0.0"
dependencies = ["a 1.0.0"]
""",
        )

        with pytest.raises(CycleDetectedError) as exc_info:
            Project(DepsConfig()).graph(manifest_path, lock_path)

        assert set(exc_info.value.cycle) == {"a 1.0.0", "b 1.0.0"}
