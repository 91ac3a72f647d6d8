"""Multi-bundle jobs: fetch and process many sources with bounded fan-out."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Sequence

from bundlesplit.core.errors import BundleSplitError
from bundlesplit.core.logging import Logger, get_logger
from bundlesplit.core.paths import bundle_label, resolve_bundle_output
from bundlesplit.modules.extract import extract_all
from bundlesplit.modules.naming import NameAllocator, PrefixCluster, compute_clusters

from .concurrency import run_bounded
from .fetch import BundleFetcher
from .models import ExportOptions, ExportReport
from .pipeline import ExportService, decode_bundle

__all__ = [
    "BatchOutcome",
    "BatchResult",
    "assign_bundle_labels",
    "collect_declared_names",
    "run_batch",
]

_LOGGER = get_logger(__name__, component="batch")


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """Result for one source: a report on success, an error message otherwise."""

    source: str
    report: ExportReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class BatchResult:
    outcomes: tuple[BatchOutcome, ...]
    clusters: tuple[PrefixCluster, ...] | None = None

    @property
    def failed(self) -> tuple[BatchOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.ok)

    @property
    def modules(self) -> int:
        return sum(
            outcome.report.modules for outcome in self.outcomes if outcome.report
        )


def assign_bundle_labels(sources: Sequence[str]) -> list[str]:
    """Return one label per source, suffixing repeated stems ``_2``, ``_3``, ...

    Example:
        >>> assign_bundle_labels(["x/app.js", "https://cdn.example.com/app.js", "b.js"])
        ['app', 'app_2', 'b']
    """

    allocator = NameAllocator()
    return [allocator.claim(bundle_label(source)) for source in sources]


def collect_declared_names(texts: Iterable[str]) -> list[str]:
    """Return every declared module name across ``texts`` in source order."""

    names: list[str] = []
    for text in texts:
        names.extend(
            span.declared_name for span in extract_all(text) if span.declared_name
        )
    return names


def run_batch(
    sources: Sequence[str],
    output_root: Path,
    options: ExportOptions,
    *,
    service: ExportService,
    fetcher: BundleFetcher,
    concurrency: int = 1,
    flatten: bool = False,
    logger: Logger | None = None,
) -> BatchResult:
    """Fetch and export every source with at most ``concurrency`` in flight.

    When grouping is enabled without a pinned prefix list, every source is
    fetched first so clusters are computed once across all bundles and
    applied uniformly. A failing source is recorded in its outcome and never
    stops its siblings.
    """

    log = logger or _LOGGER
    prefetched: dict[str, bytes] = {}
    errors: dict[str, str] = {}
    clusters: tuple[PrefixCluster, ...] | None = options.explicit_prefixes

    if options.group_by_common_prefix and options.explicit_prefixes is None:

        def _prefetch(source: str) -> None:
            try:
                prefetched[source] = fetcher.fetch(source)
            except BundleSplitError as exc:
                errors[source] = str(exc)

        run_bounded(sources, concurrency, _prefetch, thread_name_prefix="bundlesplit-fetch")
        clusters = compute_clusters(
            collect_declared_names(
                decode_bundle(prefetched[source])
                for source in sources
                if source in prefetched
            ),
            min_prefix_length=options.min_prefix_length,
            min_cluster_size=options.min_cluster_size,
            branding_prefix=options.branding_prefix,
        )
        options = replace(options, explicit_prefixes=clusters)
        log.info("batch-clusters-computed", clusters=len(clusters))

    def _process(item: tuple[str, str]) -> BatchOutcome:
        source, label = item
        if source in errors:
            return BatchOutcome(source=source, error=errors[source])
        output_dir = resolve_bundle_output(output_root, label, flatten=flatten)
        try:
            payload = prefetched.pop(source, None)
            if payload is None:
                payload = fetcher.fetch(source)
            report = service.process(payload, output_dir, options, label=label)
        except BundleSplitError as exc:
            log.error("batch-item-failed", source=source, error=str(exc))
            return BatchOutcome(source=source, error=str(exc))
        return BatchOutcome(source=source, report=report)

    labelled = list(zip(sources, assign_bundle_labels(sources)))
    outcomes = run_bounded(labelled, concurrency, _process, thread_name_prefix="bundlesplit-batch")
    result = BatchResult(outcomes=tuple(outcomes), clusters=clusters)
    log.info(
        "batch-complete",
        sources=len(sources),
        failed=len(result.failed),
        modules=result.modules,
    )
    return result
