"""Locating and reading Cargo.toml / Cargo.lock documents."""

import tomllib
from pathlib import Path
from typing import Any

from cargo_deps.errors import ManifestError
from cargo_deps.log_config import get_logger

logger = get_logger(__name__)

MANIFEST_NAME = "Cargo.toml"
LOCK_NAME = "Cargo.lock"


def check_manifest_name(path: str | Path) -> None:
    """Ensure the manifest path points at a file named ``Cargo.toml``.

    Raises:
        ManifestError: If the file name is missing or different
    """
    name = Path(path).name
    if not name:
        msg = "The manifest path is not a valid file"
        raise ManifestError(msg)
    if name != MANIFEST_NAME:
        msg = f"The manifest-path must be a path to a {MANIFEST_NAME} file"
        raise ManifestError(msg)


def find_manifest_file(path: str | Path) -> Path:
    """Find ``path``, or a file of the same name in one of its parent directories.

    Args:
        path: Path to the file, relative to the working directory or absolute

    Returns:
        Absolute path of the first match

    Raises:
        ManifestError: If no directory up to the filesystem root contains the file
    """
    candidate = Path(path).resolve()
    if candidate.is_file():
        return candidate

    for directory in candidate.parent.parents:
        found = directory / candidate.name
        if found.is_file():
            logger.debug("file_found_in_parent", requested=str(path), found=str(found))
            return found

    msg = f"Could not find `{candidate.name}` in `{candidate.parent}` or any parent directory"
    raise ManifestError(msg)


def find_lock_file(manifest_path: Path) -> Path:
    """Find the Cargo.lock next to ``manifest_path`` or in a parent directory."""
    return find_manifest_file(manifest_path.with_name(LOCK_NAME))


def toml_from_file(path: str | Path) -> dict[str, Any]:
    """Parse a TOML file into a plain dictionary tree.

    Raises:
        ManifestError: If the file cannot be read or is not valid UTF-8 TOML
    """
    toml_path = Path(path)
    try:
        with toml_path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        msg = f"Could not read {toml_path}: {e}"
        raise ManifestError(msg) from e
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        msg = f"Could not parse {toml_path} as TOML: {e}"
        raise ManifestError(msg) from e

    logger.debug("toml_loaded", path=str(toml_path), keys=sorted(data))
    return data
