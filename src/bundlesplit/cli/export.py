"""Typer commands driving the export pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import tomlkit
import typer

from bundlesplit.cli.context import require_context
from bundlesplit.core.errors import BundleSplitError
from bundlesplit.core.logging import Logger
from bundlesplit.core.paths import default_output_dir
from bundlesplit.modules.export import (
    BundleFetcher,
    ExportReport,
    ExportService,
    collect_declared_names,
    decode_bundle,
    read_bundle,
    run_batch,
    run_bounded,
)
from bundlesplit.modules.naming import PrefixCluster, compute_clusters


def _export_overrides(
    *,
    flat: bool | None = None,
    disambiguate: bool | None = None,
    group: bool | None = None,
    prefixes: Sequence[str] | None = None,
    suffix_prefixes: Sequence[str] | None = None,
    minify: bool | None = None,
    workers: int | None = None,
    write_concurrency: int | None = None,
    concurrency: int | None = None,
) -> dict[str, Any]:
    """Translate supplied CLI flags into an ``[export]`` config layer."""

    overrides: dict[str, Any] = {}
    for key, value in (
        ("flat", flat),
        ("disambiguate_names", disambiguate),
        ("group_by_common_prefix", group),
        ("apply_external_transform", minify),
        ("worker_pool_size", workers),
        ("write_concurrency", write_concurrency),
        ("per_bundle_concurrency", concurrency),
    ):
        if value is not None:
            overrides[key] = value

    entries: list[dict[str, Any]] = [
        {"raw": raw, "is_suffix": False} for raw in prefixes or ()
    ]
    entries.extend({"raw": raw, "is_suffix": True} for raw in suffix_prefixes or ())
    if entries:
        overrides["explicit_prefix_list"] = entries
        overrides.setdefault("group_by_common_prefix", True)
    return overrides


def _emit_report(report: ExportReport) -> None:
    if report.empty:
        typer.secho(
            f"No modules found in {report.label}; nothing written.",
            fg=typer.colors.YELLOW,
        )
        return
    typer.secho(f"Exported {report.label}", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  output: {report.output_dir}")
    typer.echo(f"  modules: {report.modules}")
    typer.echo(f"  files: {len(report.files)}")
    if report.transform_fallbacks:
        typer.echo(f"  transform fallbacks: {report.transform_fallbacks}")
    if report.failures:
        typer.secho(
            f"  skipped calls: {len(report.failures)}",
            fg=typer.colors.YELLOW,
        )
        for failure in report.failures:
            typer.echo(f"    - {failure.message}")


def _fail(logger: Logger, *, action: str, error: Exception) -> None:
    typer.secho(f"{action} failed: {error}", fg=typer.colors.RED)
    logger.error("cli-command-failed", action=action, error=str(error))
    raise typer.Exit(code=1) from error


def export_command(
    ctx: typer.Context,
    bundle: Path = typer.Argument(
        ...,
        metavar="BUNDLE",
        help="Bundle file to split.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (defaults to <bundle dir>/deobfuscated/<stem>).",
    ),
    flat: bool | None = typer.Option(
        None,
        "--flat/--no-flat",
        help="Flat mode; disables name disambiguation.",
    ),
    disambiguate: bool | None = typer.Option(
        None,
        "--disambiguate/--no-disambiguate",
        help="Suffix colliding module names with _2, _3, ...",
    ),
    group: bool | None = typer.Option(
        None,
        "--group/--no-group",
        help="Group modules into directories by common name prefix.",
    ),
    prefix: list[str] = typer.Option(
        None,
        "--prefix",
        "-p",
        metavar="NAME",
        help="Pin a prefix cluster (repeatable); implies --group.",
    ),
    suffix_prefix: list[str] = typer.Option(
        None,
        "--suffix-prefix",
        metavar="NAME",
        help="Pin a cluster matched only against dotted-name suffixes.",
    ),
    minify: bool | None = typer.Option(
        None,
        "--minify/--no-minify",
        help="Pipe each module through the configured external transform.",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-j",
        help="Worker processes (0 processes inline).",
    ),
    write_concurrency: int | None = typer.Option(
        None,
        "--write-concurrency",
        help="Concurrent file writes per bundle.",
    ),
) -> None:
    context = require_context(ctx)
    config = context.load(
        _export_overrides(
            flat=flat,
            disambiguate=disambiguate,
            group=group,
            prefixes=prefix,
            suffix_prefixes=suffix_prefix,
            minify=minify,
            workers=workers,
            write_concurrency=write_concurrency,
        )
    )
    logger = context.start_logging(config, command="export")
    settings = config.export
    output_dir = output if output is not None else default_output_dir(bundle)

    try:
        payload = read_bundle(bundle)
        with ExportService(
            worker_pool_size=settings.worker_pool_size,
            write_concurrency=settings.write_concurrency,
            log_level=config.log_level,
            logger=logger,
        ) as service:
            report = service.process(
                payload,
                output_dir,
                settings.options(),
                label=bundle.stem,
            )
    except BundleSplitError as exc:
        _fail(logger, action="export", error=exc)
    else:
        _emit_report(report)


def batch_command(
    ctx: typer.Context,
    sources: list[str] = typer.Argument(
        ...,
        metavar="SOURCES...",
        help="Bundle paths or http(s) URLs.",
    ),
    output_root: Path = typer.Option(
        Path("deobfuscated"),
        "--output-root",
        "-o",
        help="Root directory; each bundle writes to <root>/<stem>.",
    ),
    flatten: bool = typer.Option(
        False,
        "--flatten",
        help="Write every bundle straight into the output root.",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-n",
        help="Bundles processed at once (defaults to worker count or 1).",
    ),
    group: bool | None = typer.Option(
        None,
        "--group/--no-group",
        help="Group modules by prefixes computed across every bundle.",
    ),
    prefix: list[str] = typer.Option(
        None,
        "--prefix",
        "-p",
        metavar="NAME",
        help="Pin a prefix cluster (repeatable); implies --group.",
    ),
    minify: bool | None = typer.Option(
        None,
        "--minify/--no-minify",
        help="Pipe each module through the configured external transform.",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-j",
        help="Worker processes (0 processes inline).",
    ),
) -> None:
    context = require_context(ctx)
    config = context.load(
        _export_overrides(
            group=group,
            prefixes=prefix,
            minify=minify,
            workers=workers,
            concurrency=concurrency,
        )
    )
    logger = context.start_logging(config, command="batch")
    settings = config.export

    try:
        with BundleFetcher(timeout=settings.fetch_timeout, logger=logger) as fetcher, ExportService(
            worker_pool_size=settings.worker_pool_size,
            write_concurrency=settings.write_concurrency,
            log_level=config.log_level,
            logger=logger,
        ) as service:
            result = run_batch(
                sources,
                output_root,
                settings.options(),
                service=service,
                fetcher=fetcher,
                concurrency=settings.resolved_bundle_concurrency(),
                flatten=flatten,
                logger=logger,
            )
    except BundleSplitError as exc:
        _fail(logger, action="batch", error=exc)
        return

    for outcome in result.outcomes:
        if outcome.report is not None:
            _emit_report(outcome.report)
        else:
            typer.secho(f"Failed {outcome.source}: {outcome.error}", fg=typer.colors.RED)
    if result.failed:
        raise typer.Exit(code=1)


def _render_clusters_toml(clusters: Sequence[PrefixCluster]) -> str:
    document = tomlkit.document()
    table = tomlkit.table()
    table["group_by_common_prefix"] = True
    entries = tomlkit.array()
    for cluster in clusters:
        inline = tomlkit.inline_table()
        inline["raw"] = cluster.raw
        inline["is_suffix"] = cluster.is_suffix
        entries.append(inline)
    table["explicit_prefix_list"] = entries
    document["export"] = table
    return tomlkit.dumps(document)


def clusters_command(
    ctx: typer.Context,
    sources: list[str] = typer.Argument(
        ...,
        metavar="SOURCES...",
        help="Bundle paths or http(s) URLs to scan for declared names.",
    ),
    min_length: int | None = typer.Option(
        None,
        "--min-length",
        help="Minimum shared prefix length.",
    ),
    min_size: int | None = typer.Option(
        None,
        "--min-size",
        help="Minimum number of modules per cluster.",
    ),
    as_toml: bool = typer.Option(
        False,
        "--toml",
        help="Print an [export] table pinning the clusters.",
    ),
) -> None:
    context = require_context(ctx)
    overrides: dict[str, Any] = {}
    if min_length is not None:
        overrides["min_prefix_length"] = min_length
    if min_size is not None:
        overrides["min_cluster_size"] = min_size
    config = context.load(overrides)
    logger = context.start_logging(config, command="clusters")
    settings = config.export

    try:
        with BundleFetcher(timeout=settings.fetch_timeout, logger=logger) as fetcher:
            payloads = run_bounded(
                sources,
                settings.resolved_bundle_concurrency(),
                fetcher.fetch,
                thread_name_prefix="bundlesplit-fetch",
            )
    except BundleSplitError as exc:
        _fail(logger, action="clusters", error=exc)
        return

    clusters = compute_clusters(
        collect_declared_names(decode_bundle(payload) for payload in payloads),
        min_prefix_length=settings.min_prefix_length,
        min_cluster_size=settings.min_cluster_size,
        branding_prefix=settings.branding_prefix,
    )
    logger.info("clusters-computed", sources=len(sources), clusters=len(clusters))

    if as_toml:
        typer.echo(_render_clusters_toml(clusters), nl=False)
        return
    if not clusters:
        typer.secho("No common prefixes found.", fg=typer.colors.YELLOW)
        return
    typer.secho(f"{len(clusters)} cluster(s)", fg=typer.colors.CYAN, bold=True)
    for cluster in clusters:
        typer.echo(f"  - {cluster.raw} ({len(cluster.members)} modules)")


__all__ = ["batch_command", "clusters_command", "export_command"]
