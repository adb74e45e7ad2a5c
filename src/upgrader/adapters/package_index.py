"""Package index client (PyPI JSON API) over httpx.

Lookups are retried on transient failures with bounded backoff and guarded by a
circuit breaker, so an unreachable index fails the analysis quickly.
``fetch_all`` fans lookups out over a small thread pool and funnels every
result through one bounded queue back to the calling thread.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable

import httpx

from upgrader import __version__
from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.defaults import (
    DEFAULT_INDEX_URL,
    INDEX_LOOKUP_WORKERS,
    INDEX_RESULT_QUEUE_SIZE,
    INDEX_RETRY_ATTEMPTS,
    INDEX_RETRY_BASE_DELAY_SECONDS,
    INDEX_TIMEOUT_SECONDS,
    INDEX_TRANSIENT_STATUSES,
)
from upgrader.resilience import CircuitBreaker, CircuitOpen, retry

log = logging.getLogger("upgrader.adapters.package_index")

_DRAIN_POLL_SECONDS = 0.1


class PackageIndexError(Exception):
    """The package index could not answer a lookup."""
    pass


@dataclass(frozen=True)
class PackageReleases:
    name: str
    latest: str
    versions: frozenset[str]
    yanked: frozenset[str]

    def is_yanked(self, version: str) -> bool:
        return version in self.yanked


def parse_releases(name: str, data: dict[str, Any]) -> PackageReleases:
    try:
        latest = str(data["info"]["version"])
        releases: dict[str, list[dict[str, Any]]] = data.get("releases") or {}
    except (KeyError, TypeError) as e:
        raise PackageIndexError(f"Malformed index response for {name}: {e}") from e
    yanked = {
        version for version, files in releases.items()
        if files and all(f.get("yanked", False) for f in files)
    }
    return PackageReleases(
        name=name,
        latest=latest,
        versions=frozenset(releases),
        yanked=frozenset(yanked),
    )


def is_transient(error: Exception) -> bool:
    """True for failures worth retrying: lost connections and busy-server answers."""
    if isinstance(error, httpx.TransportError):
        return True
    return (
        isinstance(error, httpx.HTTPStatusError)
        and error.response.status_code in INDEX_TRANSIENT_STATUSES
    )


class PackageIndexClient:
    def __init__(
        self,
        base_url: str = DEFAULT_INDEX_URL,
        *,
        client: httpx.Client | None = None,
        timeout: float = INDEX_TIMEOUT_SECONDS,
        breaker: CircuitBreaker | None = None,
        workers: int = INDEX_LOOKUP_WORKERS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"Accept": "application/json", "User-Agent": f"upgrader/{__version__}"},
        )
        self.breaker = breaker or CircuitBreaker(f"package index {self.base_url}")
        self.workers = max(1, workers)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> PackageIndexClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- single lookup -----------------------------------------------------

    def get_releases(self, name: str) -> PackageReleases | None:
        """Release metadata for *name*, or None when the index does not know it."""
        try:
            data = self.breaker.call(self._fetch, name)
        except CircuitOpen as e:
            raise PackageIndexError(str(e)) from e
        except httpx.HTTPError as e:
            raise PackageIndexError(f"Package index lookup for {name} failed: {e}") from e
        except ValueError as e:
            raise PackageIndexError(f"Package index returned invalid JSON for {name}: {e}") from e
        if data is None:
            log.debug("Package %s not found on %s", name, self.base_url)
            return None
        return parse_releases(name, data)

    @retry(INDEX_RETRY_ATTEMPTS, INDEX_RETRY_BASE_DELAY_SECONDS, when=is_transient)
    def _fetch(self, name: str) -> dict[str, Any] | None:
        response = self._client.get(f"{self.base_url}/{name}/json")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return response.json()

    # -- fan-out -----------------------------------------------------------

    def fetch_all(
        self,
        names: Iterable[str],
        token: CancellationToken,
    ) -> dict[str, PackageReleases | None]:
        """Look up many packages concurrently; results are collected on this thread only."""
        unique = list(dict.fromkeys(names))
        if not unique:
            return {}
        results: queue.Queue[tuple[str, PackageReleases | None, Exception | None]] = queue.Queue(
            maxsize=INDEX_RESULT_QUEUE_SIZE,
        )

        def worker(name: str) -> None:
            try:
                results.put((name, self.get_releases(name), None))
            except Exception as e:
                results.put((name, None, e))

        collected: dict[str, PackageReleases | None] = {}
        first_error: Exception | None = None
        pool = ThreadPoolExecutor(max_workers=min(self.workers, len(unique)))
        futures: list[Future[None]] = [pool.submit(worker, name) for name in unique]
        try:
            while len(collected) < len(unique):
                if token.is_cancelled:
                    break
                try:
                    name, releases, error = results.get(timeout=_DRAIN_POLL_SECONDS)
                except queue.Empty:
                    continue
                if error is not None:
                    first_error = first_error or error
                collected[name] = releases
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
            # Keep draining so no worker stays blocked on a full queue.
            while not all(f.done() for f in futures):
                try:
                    results.get(timeout=_DRAIN_POLL_SECONDS)
                except queue.Empty:
                    pass

        if token.is_cancelled:
            raise OperationCancelled("Package index lookups cancelled")
        if first_error is not None:
            raise first_error
        return collected
