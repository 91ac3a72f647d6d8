"""Configuration models and loaders for :mod:`bundlesplit`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from pathlib import Path
from typing import Any, Mapping

import tomllib
import tomlkit
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from bundlesplit.core.errors import InvalidConfigurationError
from bundlesplit.modules.export.models import ExportOptions
from bundlesplit.modules.naming.clusters import PrefixCluster, cluster_from_raw
from bundlesplit.resources import get_resource

DEFAULTS_RESOURCE_NAME = "bundlesplit.defaults.toml"
USER_CONFIG_NAME = "bundlesplit.toml"

ENV_LOG_LEVEL = "BUNDLESPLIT_LOG_LEVEL"
ENV_WORKERS = "BUNDLESPLIT_WORKERS"

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class PrefixEntry(BaseModel):
    """One entry of an explicitly pinned prefix list."""

    raw: str = Field(description="Directory name used for the cluster.")
    is_suffix: bool = Field(
        default=False,
        description="Match only against the suffix of dotted module names.",
    )

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @model_validator(mode="before")
    @classmethod
    def _coerce_raw(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"raw": value}
        return value

    @field_validator("raw")
    @classmethod
    def _validate_raw(cls, value: str) -> str:
        if not value:
            raise ValueError("Prefix entries cannot be blank.")
        if "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError(
                f"Prefix entry {value!r} is not a valid directory name."
            )
        return value


class ExportSettings(BaseModel):
    """Options consumed by the extraction/export core."""

    disambiguate_names: bool = Field(
        default=True,
        description="Append numeric suffixes to colliding module names.",
    )
    flat: bool = Field(
        default=False,
        description="Flat mode; disables disambiguation entirely.",
    )
    group_by_common_prefix: bool = Field(
        default=False,
        description="Cluster modules into directories by shared prefixes.",
    )
    explicit_prefix_list: tuple[PrefixEntry, ...] | None = Field(
        default=None,
        description="Pinned clusters; bypasses recomputation when present.",
    )
    min_prefix_length: int = Field(default=3, ge=1)
    min_cluster_size: int = Field(default=2, ge=2)
    branding_prefix: str = Field(
        default="WAWeb",
        description="Prefix stripped from names before clustering.",
    )
    apply_external_transform: bool = Field(
        default=False,
        description="Pipe each module through the external minifier.",
    )
    transform_command: tuple[str, ...] = Field(
        default=("terser", "--compress", "--mangle"),
        description="Command line of the external minifier (stdin/stdout).",
    )
    transform_timeout: float = Field(default=60.0, gt=0.0)
    worker_pool_size: int = Field(
        default=0,
        ge=0,
        description="Number of worker processes; 0 processes inline.",
    )
    per_bundle_concurrency: int | None = Field(
        default=None,
        description="Bundles processed at once during batch jobs.",
    )
    write_concurrency: int = Field(default=16, ge=1)
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Files per chunk streamed back by pooled workers.",
    )
    fetch_timeout: float = Field(default=30.0, gt=0.0)

    model_config = {
        "frozen": True,
        "str_strip_whitespace": True,
    }

    @field_validator("per_bundle_concurrency")
    @classmethod
    def _validate_per_bundle(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("per_bundle_concurrency must be >= 1.")
        return value

    @field_validator("transform_command")
    @classmethod
    def _validate_command(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value or not value[0]:
            raise ValueError("transform_command needs an executable.")
        return value

    @property
    def effective_disambiguation(self) -> bool:
        return self.disambiguate_names and not self.flat

    def resolved_bundle_concurrency(self) -> int:
        """Return bundles processed at once, defaulting to pool size or 1."""

        if self.per_bundle_concurrency is not None:
            return self.per_bundle_concurrency
        return max(1, self.worker_pool_size)

    def explicit_clusters(self) -> tuple[PrefixCluster, ...] | None:
        if self.explicit_prefix_list is None:
            return None
        return tuple(
            cluster_from_raw(
                entry.raw,
                branding_prefix=self.branding_prefix,
                is_suffix=entry.is_suffix,
            )
            for entry in self.explicit_prefix_list
        )

    def options(self) -> ExportOptions:
        """Return the picklable value handed to pipelines and workers."""

        return ExportOptions(
            disambiguate=self.effective_disambiguation,
            group_by_common_prefix=self.group_by_common_prefix,
            explicit_prefixes=self.explicit_clusters(),
            min_prefix_length=self.min_prefix_length,
            min_cluster_size=self.min_cluster_size,
            branding_prefix=self.branding_prefix,
            apply_transform=self.apply_external_transform,
            transform_command=self.transform_command,
            transform_timeout=self.transform_timeout,
            batch_size=self.batch_size,
        )


class AppConfig(BaseModel):
    """Root configuration for the :mod:`bundlesplit` application."""

    log_level: str = Field(
        default="INFO",
        description="Default logging level for the application runtime.",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional JSON-lines log file.",
    )
    export: ExportSettings = Field(default_factory=ExportSettings)

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {value!r}")
        return normalized


def read_packaged_defaults_text() -> str:
    """Return the raw packaged defaults TOML content."""

    resource = get_resource(DEFAULTS_RESOURCE_NAME)
    return resource.read_text(encoding="utf-8")


def load_packaged_defaults() -> dict[str, Any]:
    """Load the packaged defaults as a plain dictionary.

    Example:
        >>> load_packaged_defaults()["log_level"]
        'INFO'
    """

    return tomllib.loads(read_packaged_defaults_text())


def load_user_config(path: Path) -> dict[str, Any]:
    """Parse a user TOML file, rejecting unreadable or malformed input."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidConfigurationError(
            f"Cannot read config file {path}: {exc}"
        ) from exc
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidConfigurationError(
            f"Malformed config file {path}: {exc}"
        ) from exc


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``BUNDLESPLIT_*`` variables into a config layer."""

    layer: dict[str, Any] = {}
    level = environ.get(ENV_LOG_LEVEL)
    if level:
        layer["log_level"] = level
    workers = environ.get(ENV_WORKERS)
    if workers:
        try:
            layer["export"] = {"worker_pool_size": int(workers)}
        except ValueError as exc:
            raise InvalidConfigurationError(
                f"{ENV_WORKERS} must be an integer (got {workers!r})."
            ) from exc
    return layer


def _deep_merge(
    base: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Recursively merge ``overlay`` into ``base`` returning a new dict."""

    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MappingABC)
            and isinstance(value, MappingABC)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    *,
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
    env_config: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load configuration according to the precedence stack.

    Args:
        defaults: Packaged defaults shipped with the application.
        user_config: Parsed user ``bundlesplit.toml`` content.
        env_config: Settings derived from environment variables.
        cli_overrides: Settings supplied via CLI flags.

    Returns:
        A validated :class:`AppConfig` instance.

    Raises:
        InvalidConfigurationError: If any layer fails validation.
    """

    stack = dict(defaults)
    for layer in (user_config, env_config, cli_overrides):
        if layer:
            stack = _deep_merge(stack, layer)

    try:
        return AppConfig(**stack)
    except ValidationError as exc:
        raise InvalidConfigurationError(str(exc)) from exc


def render_user_config(config: AppConfig) -> str:
    """Render ``config`` as a ``bundlesplit.toml`` document."""

    document = tomlkit.document()
    document.add(tomlkit.comment("Generated by bundlesplit config"))
    document.add(
        tomlkit.comment("Precedence: CLI flags > env vars > bundlesplit.toml > defaults")
    )
    document.add(tomlkit.nl())
    document["log_level"] = config.log_level
    if config.log_file is not None:
        document["log_file"] = str(config.log_file)

    settings = config.export
    table = tomlkit.table()
    payload = settings.model_dump(mode="python", exclude={"explicit_prefix_list"})
    for key in sorted(payload):
        value = payload[key]
        if value is None:
            continue
        table[key] = list(value) if isinstance(value, tuple) else value
    if settings.explicit_prefix_list is not None:
        entries = tomlkit.array()
        for entry in settings.explicit_prefix_list:
            inline = tomlkit.inline_table()
            inline["raw"] = entry.raw
            inline["is_suffix"] = entry.is_suffix
            entries.append(inline)
        table["explicit_prefix_list"] = entries
    document["export"] = table
    return tomlkit.dumps(document)


__all__ = [
    "AppConfig",
    "DEFAULTS_RESOURCE_NAME",
    "ENV_LOG_LEVEL",
    "ENV_WORKERS",
    "ExportSettings",
    "PrefixEntry",
    "USER_CONFIG_NAME",
    "env_overrides",
    "load_config",
    "load_packaged_defaults",
    "load_user_config",
    "read_packaged_defaults_text",
    "render_user_config",
]
