"""Configuration Management with Pydantic.

This module implements the immutable rendering/filtering configuration. Values
are layered from defaults, an optional YAML file, ``CARGO_DEPS_*`` environment
variables and finally command-line flags.
"""

import argparse
import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = structlog.get_logger(__name__)

ENV_PREFIX = "CARGO_DEPS_"

_LIST_FIELDS = ("filter", "subgraph")
_BOOL_FIELDS = (
    "include_orphans",
    "include_versions",
    "regular_deps",
    "build_deps",
    "dev_deps",
    "optional_deps",
)
_STR_FIELDS = ("manifest_path", "dot_file", "subgraph_name", "logging_level")


class DepsConfig(BaseModel):
    """Options controlling which dependencies are walked and how they are drawn.

    Attributes:
        manifest_path: Location of the Cargo.toml manifest
        dot_file: Output file for the dot document; None means stdout
        filter: Only crates with these names are rendered
        subgraph: Crates grouped into their own cluster
        subgraph_name: Optional label of the subgraph cluster
        include_orphans: Keep nodes left without edges after filtering
        include_versions: Show the version on every node label
        regular_deps: Walk regular dependencies of the root crate
        build_deps: Walk build dependencies of the root crate
        dev_deps: Walk dev dependencies of the root crate
        optional_deps: Walk optional dependencies of the root crate
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    manifest_path: str = Field(
        default="Cargo.toml",
        description="Path to the Cargo.toml manifest",
        min_length=1,
    )
    dot_file: str | None = Field(
        default=None,
        description="Output file, stdout when unset",
    )
    filter: tuple[str, ...] | None = Field(
        default=None,
        description="Only display the named crates",
    )
    subgraph: tuple[str, ...] | None = Field(
        default=None,
        description="Group the named crates in their own subgraph",
    )
    subgraph_name: str | None = Field(
        default=None,
        description="Label of the subgraph cluster",
    )
    include_orphans: bool = Field(default=False, description="Keep orphan nodes")
    include_versions: bool = Field(default=False, description="Label every node with its version")
    regular_deps: bool = Field(default=True, description="Include regular dependencies")
    build_deps: bool = Field(default=False, description="Include build dependencies")
    dev_deps: bool = Field(default=False, description="Include dev dependencies")
    optional_deps: bool = Field(default=False, description="Include optional dependencies")
    logging_level: str = Field(
        default="WARNING",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @field_validator("filter", "subgraph")
    @classmethod
    def validate_names(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        """Reject empty crate names in name lists.

        Args:
            v: The crate names to validate

        Returns:
            The validated names

        Raises:
            ValueError: If a name is empty
        """
        if v is not None and any(not name.strip() for name in v):
            msg = "Crate names must not be empty"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_combinations(self) -> "DepsConfig":
        """Check options that depend on each other."""
        if self.subgraph_name is not None and self.subgraph is None:
            msg = "subgraph_name requires subgraph to be set"
            raise ValueError(msg)
        if not (self.regular_deps or self.build_deps or self.dev_deps or self.optional_deps):
            msg = "At least one kind of dependency must be included"
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DepsConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            Parsed and validated DepsConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            msg = "Configuration file must contain a mapping"
            raise ValueError(msg)

        config = cls(**cls._apply_env_overrides(config_data))
        logger.info("configuration_loaded", **config.model_dump())
        return config

    @classmethod
    def from_env(cls) -> "DepsConfig":
        """Build configuration from defaults and environment overrides only."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern ``CARGO_DEPS_<FIELD>``, e.g.
        ``CARGO_DEPS_DEV_DEPS=true`` or ``CARGO_DEPS_FILTER=serde,rand``.

        Args:
            config_data: Base configuration dictionary

        Returns:
            Configuration dictionary with environment overrides applied
        """
        config_data = dict(config_data)

        for field_name in (*_STR_FIELDS, *_BOOL_FIELDS, *_LIST_FIELDS):
            env_var = ENV_PREFIX + field_name.upper()
            value = os.environ.get(env_var)
            if value is None:
                continue

            if field_name in _BOOL_FIELDS:
                config_data[field_name] = value.lower() in ("true", "1", "yes")
            elif field_name in _LIST_FIELDS:
                config_data[field_name] = [item.strip() for item in value.split(",") if item.strip()]
            else:
                config_data[field_name] = value

            logger.debug("env_override_applied", env_var=env_var, field=field_name)

        return config_data

    @classmethod
    def from_args(cls, args: argparse.Namespace, base: "DepsConfig | None" = None) -> "DepsConfig":
        """Layer command-line flags on top of a base configuration.

        Flags that were not given leave the base value untouched. ``--all-deps``
        enables every kind and ``--no-regular-deps`` then removes regular deps.

        Args:
            args: Parsed command-line arguments
            base: Configuration to start from (defaults when None)

        Returns:
            A new validated DepsConfig

        Raises:
            ValueError: If the resulting combination is invalid
        """
        data = (base or cls()).model_dump()

        for field_name in ("manifest_path", "dot_file", "subgraph_name"):
            value = getattr(args, field_name, None)
            if value is not None:
                data[field_name] = value
        for field_name in _LIST_FIELDS:
            value = getattr(args, field_name, None)
            if value:
                data[field_name] = value
        for field_name in ("include_orphans", "include_versions"):
            if getattr(args, field_name, False):
                data[field_name] = True

        if getattr(args, "all_deps", False):
            data.update(regular_deps=True, build_deps=True, dev_deps=True, optional_deps=True)
        for field_name in ("build_deps", "dev_deps", "optional_deps"):
            if getattr(args, field_name, False):
                data[field_name] = True
        if getattr(args, "no_regular_deps", False):
            data["regular_deps"] = False

        if getattr(args, "log_level", None):
            data["logging_level"] = args.log_level

        try:
            return cls(**data)
        except ValidationError as e:
            msg = f"Invalid options: {e}"
            raise ValueError(msg) from e


def load_config(config_path: str | Path | None = None) -> DepsConfig:
    """Load configuration from a YAML file, or from the environment when no file is given."""
    if config_path is None:
        return DepsConfig.from_env()
    return DepsConfig.from_yaml(config_path)


__all__ = ["ENV_PREFIX", "DepsConfig", "load_config"]
