"""Load bundle bytes from local paths or ``http(s)`` URLs."""

from __future__ import annotations

from pathlib import Path

import httpx

from bundlesplit.core.errors import BundleIOError
from bundlesplit.core.logging import Logger, get_logger
from bundlesplit.core.paths import is_remote_source

from .pipeline import read_bundle

__all__ = ["BundleFetcher"]

_LOGGER = get_logger(__name__, component="fetch")


class BundleFetcher:
    """Thread-safe loader backed by a shared :class:`httpx.Client`."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )
        self._logger = logger or _LOGGER

    def fetch(self, source: str) -> bytes:
        """Return the raw bytes of ``source``.

        Raises:
            BundleIOError: When the file cannot be read or the request fails.
        """

        if not is_remote_source(source):
            return read_bundle(Path(source).expanduser())

        try:
            response = self._client.get(source)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BundleIOError(f"Unable to fetch {source}: {exc}", path=source) from exc

        self._logger.debug(
            "bundle-fetched",
            source=source,
            status=response.status_code,
            size=len(response.content),
        )
        return response.content

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BundleFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
