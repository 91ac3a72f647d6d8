"""Tests for :mod:`bundlesplit.modules.export.pool` using real worker processes."""

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from bundlesplit.core.errors import BundleIOError, InvalidConfigurationError
from bundlesplit.modules.export import (
    ExportOptions,
    ExportService,
    WorkerFaultError,
    WorkerPool,
)
from bundlesplit.modules.export.models import ChunkMessage


@pytest.fixture
def pool() -> Iterator[WorkerPool]:
    with WorkerPool(1, write_concurrency=2, log_level="WARNING") as running:
        yield running


def test_chunked_results_are_all_written(
    pool: WorkerPool, tmp_path: Path, sample_bundle: str
) -> None:
    output_dir = tmp_path / "out"

    report = pool.process(
        sample_bundle.encode("utf-8"),
        output_dir,
        ExportOptions(group_by_common_prefix=True, batch_size=1),
        label="app",
    )

    assert report.label == "app"
    assert report.modules == 3
    assert sorted(report.files) == [
        "Unrelated.js",
        "WAWebFooBa/WAWebFooBar.js",
        "WAWebFooBa/WAWebFooBaz.js",
    ]
    for relative in report.files:
        assert (output_dir / relative).read_text(encoding="utf-8").startswith("__d(")


def test_empty_bundle_reports_zero_modules(pool: WorkerPool, tmp_path: Path) -> None:
    output_dir = tmp_path / "out"

    report = pool.process(b"var nothing = 1;", output_dir, ExportOptions())

    assert report.empty
    assert not output_dir.exists()


def test_concurrent_requests_resolve_independently(
    tmp_path: Path, sample_bundle: str
) -> None:
    payload = sample_bundle.encode("utf-8")
    with WorkerPool(2, log_level="WARNING") as pool:
        futures = [
            pool.submit(payload, tmp_path / f"out{index}", ExportOptions(), label=str(index))
            for index in range(4)
        ]
        reports = [future.result(timeout=60) for future in futures]

    assert [report.label for report in reports] == ["0", "1", "2", "3"]
    assert all(report.modules == 3 for report in reports)
    assert all((tmp_path / f"out{index}" / "Unrelated.js").exists() for index in range(4))


def test_write_failure_fails_only_its_request(
    pool: WorkerPool, tmp_path: Path, sample_bundle: str
) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("file in the way", encoding="utf-8")
    payload = sample_bundle.encode("utf-8")

    failing = pool.submit(payload, blocker, ExportOptions())
    healthy = pool.submit(payload, tmp_path / "ok", ExportOptions())

    with pytest.raises(BundleIOError):
        failing.result(timeout=60)
    assert healthy.result(timeout=60).modules == 3


def test_worker_exception_fails_only_its_request(tmp_path: Path, sample_bundle: str) -> None:
    payload = sample_bundle.encode("utf-8")
    # Plain strings where clusters are expected blow up inside the worker.
    broken = ExportOptions(group_by_common_prefix=True, explicit_prefixes=("WAWebFoo",))

    with WorkerPool(2, log_level="WARNING") as pool:
        failing = pool.submit(payload, tmp_path / "bad", broken)
        healthy = pool.submit(payload, tmp_path / "ok", ExportOptions())

        with pytest.raises(WorkerFaultError) as excinfo:
            failing.result(timeout=60)
        report = healthy.result(timeout=60)

    assert excinfo.value.worker_id == 0
    assert excinfo.value.request_id == 1
    assert "AttributeError" in str(excinfo.value)
    assert report.modules == 3
    assert (tmp_path / "ok" / "Unrelated.js").exists()
    assert not (tmp_path / "bad").exists()


def test_liveness_checks_run_while_messages_keep_arriving(
    pool: WorkerPool, monkeypatch: pytest.MonkeyPatch
) -> None:
    checks: list[float] = []
    monkeypatch.setattr(pool, "_check_workers", lambda: checks.append(time.monotonic()))

    deadline = time.monotonic() + 1.5
    while time.monotonic() < deadline:
        pool._outbox.put(ChunkMessage(10_000, ()))
        time.sleep(0.01)

    assert len(checks) >= 2


def test_dead_worker_is_replaced(pool: WorkerPool, tmp_path: Path, sample_bundle: str) -> None:
    original = pool._workers[0].process
    original.terminate()
    original.join(5)

    deadline = time.monotonic() + 10
    while pool._workers[0].process is original and time.monotonic() < deadline:
        time.sleep(0.05)

    assert pool._workers[0].process is not original
    report = pool.process(sample_bundle.encode("utf-8"), tmp_path, ExportOptions())
    assert report.modules == 3


def test_closed_pool_rejects_submissions(tmp_path: Path) -> None:
    pool = WorkerPool(1, log_level="WARNING")
    pool.close()

    with pytest.raises(RuntimeError):
        pool.submit(b"", tmp_path, ExportOptions())


@pytest.mark.parametrize("size", [0, -1])
def test_pool_size_must_be_positive(size: int) -> None:
    with pytest.raises(InvalidConfigurationError):
        WorkerPool(size)


def test_service_routes_through_pool(tmp_path: Path, sample_bundle: str) -> None:
    with ExportService(worker_pool_size=1, log_level="WARNING") as service:
        assert service.pooled is True
        report = service.process(sample_bundle, tmp_path, ExportOptions(), label="app")

    assert report.modules == 3
    assert (tmp_path / "WAWebFooBar.js").exists()
