"""Check whether bookmarked URLs still answer, using bounded concurrent HEAD requests."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

import requests
from pydantic import BaseModel, Field

from .config import REACHABILITY_TIMEOUT, REACHABILITY_WORKERS

if TYPE_CHECKING:  # runtime import kept minimal
    from collections.abc import Iterable

LOGGER = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "BookmarkImporter/1.0 (link check)",
}

_SMALL_BATCH_CUTOFF = 3


class LinkCheck(BaseModel):
    """Outcome of probing one URL."""

    url: str
    valid: bool
    status: int = 0
    error: str | None = None


class ReachabilityReport(BaseModel):
    """Summary of a reachability run, in input order."""

    total: int
    valid: int
    invalid: int
    results: list[LinkCheck] = Field(default_factory=list)


def check_reachability(
    urls: Iterable[str],
    timeout: float = REACHABILITY_TIMEOUT,
    workers: int = REACHABILITY_WORKERS,
) -> ReachabilityReport:
    """Probe every URL with a HEAD request; a failing probe never stops the others."""
    targets: list[str] = list(urls)
    session = requests.Session()
    session.headers.update(HEADERS)

    def _work(url: str) -> LinkCheck:
        try:
            return _probe(session, url, timeout)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Reachability probe crashed for %s: %s", url, exc)
            return LinkCheck(url=url, valid=False, error=str(exc) or "Check failed")

    results: list[LinkCheck]
    if len(targets) <= _SMALL_BATCH_CUTOFF:
        results = [_work(url) for url in targets]
    else:
        results = [None] * len(targets)  # type: ignore[list-item]
        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            future_map = {executor.submit(_work, url): idx for idx, url in enumerate(targets)}
            for future in as_completed(future_map):
                idx = future_map[future]
                results[idx] = future.result()

    valid = sum(1 for item in results if item.valid)
    LOGGER.info("Checked %d links: %d reachable, %d not", len(results), valid, len(results) - valid)
    return ReachabilityReport(
        total=len(results), valid=valid, invalid=len(results) - valid, results=results,
    )


def _probe(session: requests.Session, url: str, timeout: float) -> LinkCheck:
    try:
        response = session.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        LOGGER.debug("HEAD %s failed: %s", url, exc)
        return LinkCheck(url=url, valid=False, status=0, error=str(exc))
    return LinkCheck(url=url, valid=response.ok, status=response.status_code)
