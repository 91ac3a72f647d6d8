"""Process-backed worker pool with per-request write chains.

Each worker unit is a spawned process with its own inbox; all units share one
outbox. A listener thread in the coordinator routes chunk messages to a
per-request :class:`_WriteChain`, which drains chunks in arrival order on an
I/O executor. A request resolves only after its terminal message arrived and
every chunk before it has been written.
"""

from __future__ import annotations

import itertools
import multiprocessing
import queue
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable

from bundlesplit.core.errors import InvalidConfigurationError
from bundlesplit.core.logging import Logger, configure_logging, get_logger

from .errors import WorkerFaultError
from .models import (
    ChunkMessage,
    DoneMessage,
    ErrorMessage,
    ExportOptions,
    ExportReport,
    ExportRequest,
    WorkerMessage,
)
from .pipeline import build_export_files, decode_bundle, write_encoded_files

__all__ = ["WorkerPool"]

_LOGGER = get_logger(__name__, component="worker-pool")

_POLL_INTERVAL = 0.2
_JOIN_TIMEOUT = 5.0


def _send_files(request: ExportRequest, outbox: Any) -> DoneMessage:
    result = build_export_files(decode_bundle(request.bundle), request.options)
    batch_size = max(1, request.options.batch_size)

    batch: list[tuple[str, bytes]] = []
    for item in result.files:
        batch.append((item.relative_path, item.content.encode("utf-8")))
        if len(batch) >= batch_size:
            outbox.put(ChunkMessage(request.request_id, tuple(batch)))
            batch = []
    if batch:
        outbox.put(ChunkMessage(request.request_id, tuple(batch)))

    return DoneMessage(
        request_id=request.request_id,
        modules=result.modules,
        failures=result.failures,
        transform_fallbacks=result.transform_fallbacks,
    )


def _worker_main(worker_id: int, inbox: Any, outbox: Any, log_level: str) -> None:
    """Entry point of a worker unit; ``None`` on the inbox stops it."""

    configure_logging(level=log_level)
    logger = get_logger(__name__, component="worker", worker_id=worker_id)
    logger.debug("worker-started")
    while True:
        request = inbox.get()
        if request is None:
            break
        try:
            outbox.put(_send_files(request, outbox))
        except Exception as exc:
            logger.error("worker-request-failed", request_id=request.request_id, error=str(exc))
            outbox.put(ErrorMessage(request.request_id, f"{type(exc).__name__}: {exc}"))
    logger.debug("worker-stopped")


class _WriteChain:
    """Serialize chunk writes for one request without blocking the listener."""

    def __init__(
        self,
        executor: ThreadPoolExecutor,
        write_chunk: Callable[[tuple[tuple[str, bytes], ...]], None],
    ) -> None:
        self._executor = executor
        self._write_chunk = write_chunk
        self._lock = threading.Lock()
        self._chunks: deque[tuple[tuple[str, bytes], ...]] = deque()
        self._running = False
        self._on_drained: Callable[[BaseException | None], None] | None = None
        self._error: BaseException | None = None

    def append(self, files: tuple[tuple[str, bytes], ...]) -> None:
        with self._lock:
            self._chunks.append(files)
            if self._running:
                return
            self._running = True
        self._executor.submit(self._drain)

    def close(self, on_drained: Callable[[BaseException | None], None]) -> None:
        """Call ``on_drained`` once every appended chunk has been written."""

        with self._lock:
            self._on_drained = on_drained
            if self._running:
                return
        on_drained(self._error)

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._chunks:
                    self._running = False
                    callback = self._on_drained
                    break
                files = self._chunks.popleft()
            if self._error is not None:
                continue
            try:
                self._write_chunk(files)
            except Exception as exc:
                self._error = exc
        if callback is not None:
            callback(self._error)


@dataclass(slots=True)
class _WorkerUnit:
    worker_id: int
    process: Any
    inbox: Any


@dataclass(slots=True)
class _PendingRequest:
    request_id: int
    worker_id: int
    label: str
    output_dir: Path
    future: Future[ExportReport]
    chain: _WriteChain
    written: list[str]
    settled: bool = False


class WorkerPool:
    """Fixed set of worker processes fed round-robin.

    A worker that dies fails every request it still owns with
    :class:`WorkerFaultError` and is replaced; other workers are unaffected.
    """

    def __init__(
        self,
        size: int,
        *,
        write_concurrency: int = 16,
        log_level: str = "INFO",
        logger: Logger | None = None,
        mp_context: Any | None = None,
    ) -> None:
        if size < 1:
            raise InvalidConfigurationError(
                f"Worker pool size must be >= 1 (got {size})."
            )
        if write_concurrency < 1:
            raise InvalidConfigurationError(
                f"Write concurrency must be >= 1 (got {write_concurrency})."
            )
        self._size = size
        self._write_concurrency = write_concurrency
        self._log_level = log_level
        self._logger = logger or _LOGGER
        self._ctx = mp_context or multiprocessing.get_context("spawn")
        self._outbox = self._ctx.Queue()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._cursor = 0
        self._requests: dict[int, _PendingRequest] = {}
        self._closed = False
        self._stop = threading.Event()
        self._io = ThreadPoolExecutor(
            max_workers=size,
            thread_name_prefix="bundlesplit-chain",
        )
        self._workers = [self._spawn(worker_id) for worker_id in range(size)]
        self._listener = threading.Thread(
            target=self._listen,
            name="bundlesplit-pool-listener",
            daemon=True,
        )
        self._listener.start()
        self._logger.debug("pool-started", size=size)

    @property
    def size(self) -> int:
        return self._size

    def _spawn(self, worker_id: int) -> _WorkerUnit:
        inbox = self._ctx.Queue()
        process = self._ctx.Process(
            target=_worker_main,
            args=(worker_id, inbox, self._outbox, self._log_level),
            name=f"bundlesplit-worker-{worker_id}",
            daemon=True,
        )
        process.start()
        return _WorkerUnit(worker_id=worker_id, process=process, inbox=inbox)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(
        self,
        bundle: bytes,
        output_dir: Path,
        options: ExportOptions,
        *,
        label: str = "bundle",
    ) -> Future[ExportReport]:
        """Queue ``bundle`` on the next worker and return its pending report."""

        future: Future[ExportReport] = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("WorkerPool is closed")
            worker = self._workers[self._cursor % self._size]
            self._cursor += 1
            request_id = next(self._ids)
            written: list[str] = []
            pending = _PendingRequest(
                request_id=request_id,
                worker_id=worker.worker_id,
                label=label,
                output_dir=output_dir,
                future=future,
                chain=_WriteChain(
                    self._io,
                    partial(self._write_chunk, output_dir, written),
                ),
                written=written,
            )
            self._requests[request_id] = pending
            worker.inbox.put(ExportRequest(request_id, bundle, options))
        self._logger.debug(
            "pool-request-submitted",
            request_id=request_id,
            worker_id=worker.worker_id,
            bundle=label,
        )
        return future

    def process(
        self,
        bundle: bytes,
        output_dir: Path,
        options: ExportOptions,
        *,
        label: str = "bundle",
    ) -> ExportReport:
        return self.submit(bundle, output_dir, options, label=label).result()

    # ------------------------------------------------------------------
    # Coordinator side
    # ------------------------------------------------------------------
    def _write_chunk(
        self,
        output_dir: Path,
        written: list[str],
        files: tuple[tuple[str, bytes], ...],
    ) -> None:
        written.extend(
            write_encoded_files(output_dir, files, concurrency=self._write_concurrency)
        )

    def _listen(self) -> None:
        # Liveness is checked on a fixed interval even while messages keep arriving.
        next_check = time.monotonic() + _POLL_INTERVAL
        while not self._stop.is_set():
            try:
                message = self._outbox.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                pass
            else:
                self._dispatch(message)
            if time.monotonic() >= next_check:
                self._check_workers()
                next_check = time.monotonic() + _POLL_INTERVAL

    def _dispatch(self, message: WorkerMessage) -> None:
        with self._lock:
            pending = self._requests.get(message.request_id)
        if pending is None:
            self._logger.debug(
                "pool-message-orphaned",
                request_id=message.request_id,
                kind=str(message.kind),
            )
            return

        if isinstance(message, ChunkMessage):
            pending.chain.append(message.files)
        elif isinstance(message, DoneMessage):
            pending.settled = True
            pending.chain.close(
                lambda error, done=message: self._finish(pending, done, error)
            )
        elif isinstance(message, ErrorMessage):
            self._fail(
                pending,
                WorkerFaultError(
                    message.message,
                    worker_id=pending.worker_id,
                    request_id=pending.request_id,
                ),
            )

    def _finish(
        self,
        pending: _PendingRequest,
        done: DoneMessage,
        error: BaseException | None,
    ) -> None:
        if error is not None:
            self._fail(pending, error)
            return
        with self._lock:
            owned = self._requests.pop(pending.request_id, None)
        if owned is None:
            return
        log = self._logger.bind(bundle=pending.label, request_id=pending.request_id)
        if done.modules == 0:
            log.warning("export-no-modules", output_dir=str(pending.output_dir))
        else:
            log.info(
                "export-written",
                output_dir=str(pending.output_dir),
                modules=done.modules,
                failures=len(done.failures),
                transform_fallbacks=done.transform_fallbacks,
            )
        pending.future.set_result(
            ExportReport(
                label=pending.label,
                output_dir=pending.output_dir,
                modules=done.modules,
                files=tuple(pending.written),
                failures=done.failures,
                transform_fallbacks=done.transform_fallbacks,
            )
        )

    def _fail(self, pending: _PendingRequest, error: BaseException) -> None:
        with self._lock:
            owned = self._requests.pop(pending.request_id, None)
        if owned is None:
            return
        self._logger.error(
            "pool-request-failed",
            request_id=pending.request_id,
            worker_id=pending.worker_id,
            bundle=pending.label,
            error=str(error),
        )
        pending.future.set_exception(error)

    def _check_workers(self) -> None:
        with self._lock:
            if self._closed:
                return
            dead = [
                unit for unit in self._workers if not unit.process.is_alive()
            ]
            orphaned: list[_PendingRequest] = []
            for unit in dead:
                orphaned.extend(
                    pending
                    for pending in self._requests.values()
                    if pending.worker_id == unit.worker_id and not pending.settled
                )
                self._workers[unit.worker_id] = self._spawn(unit.worker_id)
        for unit in dead:
            self._logger.error(
                "pool-worker-died",
                worker_id=unit.worker_id,
                exitcode=unit.process.exitcode,
            )
        for pending in orphaned:
            self._fail(
                pending,
                WorkerFaultError(
                    f"Worker {pending.worker_id} exited unexpectedly",
                    worker_id=pending.worker_id,
                    request_id=pending.request_id,
                ),
            )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    def close(self, *, wait: bool = True) -> None:
        """Stop every worker; with ``wait`` outstanding requests finish first."""

        with self._lock:
            if self._closed:
                return
            outstanding = [pending.future for pending in self._requests.values()]
        if wait and outstanding:
            wait_futures(outstanding)

        with self._lock:
            self._closed = True
            workers = list(self._workers)
        for unit in workers:
            unit.inbox.put(None)
        for unit in workers:
            unit.process.join(_JOIN_TIMEOUT)
            if unit.process.is_alive():
                unit.process.terminate()
                unit.process.join(_JOIN_TIMEOUT)

        self._stop.set()
        self._listener.join()
        with self._lock:
            leftovers = list(self._requests.values())
        for pending in leftovers:
            self._fail(
                pending,
                WorkerFaultError(
                    "Worker pool closed before the request completed",
                    worker_id=pending.worker_id,
                    request_id=pending.request_id,
                ),
            )
        self._io.shutdown(wait=True)
        self._outbox.close()
        self._logger.debug("pool-stopped")

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
