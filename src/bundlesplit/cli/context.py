"""Shared state carried from the CLI callback into each command."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import typer

from bundlesplit.core.config import AppConfig, load_config
from bundlesplit.core.errors import InvalidConfigurationError
from bundlesplit.core.logging import Logger, configure_logging, get_logger


@dataclass(slots=True)
class CLIContext:
    """Configuration layers resolved once by the top-level callback."""

    defaults: Mapping[str, Any]
    user_config: Mapping[str, Any] = field(default_factory=dict)
    env_config: Mapping[str, Any] = field(default_factory=dict)
    global_overrides: Mapping[str, Any] = field(default_factory=dict)
    config_path: Path | None = None

    def load(self, export_overrides: Mapping[str, Any] | None = None) -> AppConfig:
        """Validate every layer plus ``export_overrides``; exit on failure."""

        cli_layer: dict[str, Any] = dict(self.global_overrides)
        if export_overrides:
            cli_layer["export"] = dict(export_overrides)
        try:
            return load_config(
                defaults=self.defaults,
                user_config=self.user_config,
                env_config=self.env_config,
                cli_overrides=cli_layer,
            )
        except InvalidConfigurationError as exc:
            typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

    def start_logging(self, config: AppConfig, *, command: str) -> Logger:
        configure_logging(level=config.log_level, log_file=config.log_file)
        return get_logger(__name__, command=command)


def require_context(ctx: typer.Context) -> CLIContext:
    context = getattr(ctx, "obj", None)
    if not isinstance(context, CLIContext):
        typer.secho("Internal error: CLI context not initialized.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return context


__all__ = ["CLIContext", "require_context"]
