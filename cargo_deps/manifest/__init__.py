"""Cargo manifest and lock file loading."""

from .loader import find_lock_file, find_manifest_file, toml_from_file
from .project import Project

__all__ = ["Project", "find_lock_file", "find_manifest_file", "toml_from_file"]
