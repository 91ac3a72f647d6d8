"""Fixed-concurrency fan-out used for file writes and batch jobs."""

from __future__ import annotations

import concurrent.futures
from typing import Callable, Iterable, TypeVar

from bundlesplit.core.errors import InvalidConfigurationError
from bundlesplit.core.logging import Logger, get_logger

__all__ = ["run_bounded"]

T = TypeVar("T")
R = TypeVar("R")

_LOGGER = get_logger(__name__, component="bounded-runner")


def run_bounded(
    items: Iterable[T],
    limit: int,
    worker: Callable[[T], R],
    *,
    thread_name_prefix: str = "bundlesplit",
    logger: Logger | None = None,
) -> list[R]:
    """Run ``worker`` over every item with at most ``limit`` in flight.

    Every item is dispatched exactly once, even after a sibling fails. Once
    all work has settled the first failure (in completion order) is re-raised
    with a note counting the others; otherwise results are returned in item
    order.

    Raises:
        InvalidConfigurationError: If ``limit`` is below one.
    """

    if limit < 1:
        raise InvalidConfigurationError(
            f"Concurrency limit must be >= 1 (got {limit})."
        )

    pending = list(items)
    if not pending:
        return []

    log = logger or _LOGGER
    results: list[R | None] = [None] * len(pending)
    failures: list[BaseException] = []

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(limit, len(pending)),
        thread_name_prefix=thread_name_prefix,
    ) as executor:
        future_map: dict[concurrent.futures.Future[R], int] = {
            executor.submit(worker, item): index
            for index, item in enumerate(pending)
        }
        for future in concurrent.futures.as_completed(future_map):
            index = future_map[future]
            try:
                results[index] = future.result()
            except Exception as exc:
                log.debug("bounded-item-failed", index=index, error=str(exc))
                failures.append(exc)

    if failures:
        first = failures[0]
        if len(failures) > 1:
            first.add_note(f"{len(failures) - 1} more item(s) failed")
        raise first
    return results  # type: ignore[return-value]
