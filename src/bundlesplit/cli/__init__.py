"""Command-line interface primitives for :mod:`bundlesplit`.

This module exposes the Typer application behind the ``bundlesplit`` console
script. The top-level callback resolves configuration layers once; each
command then merges its own flag overrides on top.

Example:
    >>> import typer
    >>> from bundlesplit.cli import create_app
    >>> app = create_app()
    >>> isinstance(app, typer.Typer)
    True
"""

from __future__ import annotations

import os
from pathlib import Path

import typer

from bundlesplit.cli.context import CLIContext, require_context
from bundlesplit.cli.export import batch_command, clusters_command, export_command
from bundlesplit.core.config import (
    DEFAULTS_RESOURCE_NAME,
    USER_CONFIG_NAME,
    env_overrides,
    load_packaged_defaults,
    load_user_config,
    render_user_config,
)
from bundlesplit.core.errors import InvalidConfigurationError

_app_help = (
    "Split `__d(...)` module bundles into one file per module."
    "\n\n"
    "Use `bundlesplit export BUNDLE` for a single bundle or "
    "`bundlesplit batch SOURCES...` for many."
)


def _resolve_user_config(config_file: Path | None) -> tuple[Path | None, dict]:
    if config_file is not None:
        return config_file, load_user_config(config_file.expanduser())
    candidate = Path.cwd() / USER_CONFIG_NAME
    if candidate.is_file():
        return candidate, load_user_config(candidate)
    return None, {}


def create_app() -> "typer.Typer":
    """Return the Typer application powering the ``bundlesplit`` CLI.

    Returns:
        A configured Typer application ready to be invoked by ``bundlesplit``.
    """

    app = typer.Typer(
        help=_app_help,
        no_args_is_help=True,
        rich_markup_mode="rich",
        invoke_without_command=False,
        cls=typer.core.TyperGroup,
    )

    @app.callback()
    def main_callback(
        ctx: typer.Context,
        config_file: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help=f"User config file (defaults to ./{USER_CONFIG_NAME} when present).",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            "-l",
            help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
        ),
        log_file: Path | None = typer.Option(
            None,
            "--log-file",
            help="Also write JSON-lines logs to this file.",
        ),
    ) -> None:
        """Resolve configuration layers shared by every command."""

        try:
            config_path, user_layer = _resolve_user_config(config_file)
            env_layer = env_overrides(os.environ)
        except InvalidConfigurationError as exc:
            typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

        overrides: dict[str, object] = {}
        if log_level:
            overrides["log_level"] = log_level
        if log_file is not None:
            overrides["log_file"] = str(log_file)

        ctx.obj = CLIContext(
            defaults=load_packaged_defaults(),
            user_config=user_layer,
            env_config=env_layer,
            global_overrides=overrides,
            config_path=config_path,
        )

    @app.command(
        "config",
        help="Print the effective configuration as TOML.",
    )
    def config_command(
        ctx: typer.Context,
        write: Path | None = typer.Option(
            None,
            "--write",
            "-w",
            help="Write the rendered configuration to this path instead.",
        ),
    ) -> None:
        context = require_context(ctx)
        config = context.load()
        rendered = render_user_config(config)
        if write is None:
            typer.echo(rendered, nl=False)
            return
        write.parent.mkdir(parents=True, exist_ok=True)
        write.write_text(rendered, encoding="utf-8")
        typer.secho(f"Configuration written to {write}", fg=typer.colors.GREEN)
        typer.echo(f"  defaults: packaged resource ({DEFAULTS_RESOURCE_NAME})")
        if context.config_path is not None:
            typer.echo(f"  user config: {context.config_path}")

    app.command("export", help="Split one bundle file into per-module files.")(
        export_command
    )
    app.command(
        "batch",
        help="Fetch and split many bundles (paths or http(s) URLs).",
    )(batch_command)
    app.command(
        "clusters",
        help="Print common-prefix clusters computed across bundles.",
    )(clusters_command)

    return app


__all__ = ["create_app"]
