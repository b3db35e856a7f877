"""Shared plumbing for the fundamentals providers.

* ``fetch_json``: one GET with the response contract every provider shares
  (network / parse / quota / unauthorized / http-<status>, all recoverable).
* ``gather``: run sibling requests concurrently, fail fast on the first error.
* ``Provider``: base class exposing ``fetch`` (raises) and ``try_fetch``
  (returns a ``FetchResult``).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, TypeVar

import requests

from tenbagger.config import Settings, get_config
from tenbagger.errors import ErrorKind, ProviderError
from tenbagger.models import FetchResult, Fundamentals

T = TypeVar("T")


def fetch_json(
    http: Any,
    url: str,
    provider: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 20.0,
) -> Any:
    """GET url and decode its JSON body.

    Returns None for an empty body.  Every failure is raised as a
    recoverable ProviderError so the caller can move on to another source.
    """
    try:
        resp = http.get(url, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.RequestException as exc:
        raise ProviderError(provider, f"Network error: {exc}", ErrorKind.NETWORK) from exc

    status = resp.status_code
    text = resp.text
    payload = None
    if text and text.strip():
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise ProviderError(provider, "Could not parse response JSON.", ErrorKind.PARSE) from exc

    if status == 429:
        raise ProviderError(provider, "Rate limit reached (HTTP 429).", ErrorKind.QUOTA)
    if status in (401, 403):
        raise ProviderError(provider, f"Not authorized (HTTP {status}).", ErrorKind.UNAUTHORIZED)
    if status >= 400:
        reason = getattr(resp, "reason", "") or ""
        raise ProviderError(
            provider, f"HTTP {status} {reason}".strip(), ErrorKind.HTTP, status=status,
        )
    return payload


def gather(calls: list[Callable[[], T]], max_workers: int = 4) -> list[T]:
    """Run calls concurrently; results in submission order.

    The first exception propagates immediately and siblings that have not
    started are cancelled.  Running requests stop at their own timeout.
    """
    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(calls))))
    try:
        futures = [executor.submit(call) for call in calls]
        for future in as_completed(futures):
            future.result()
        return [f.result() for f in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


class Provider(ABC):
    """One external fundamentals source.

    ``http`` is anything with a requests-compatible ``get`` (the requests
    module by default); tests inject a fake.
    """

    name = "provider"

    def __init__(self, settings: Settings | None = None, http: Any = None):
        self.settings = settings or get_config()
        self.http = http if http is not None else requests

    @abstractmethod
    def fetch(self, ticker: str) -> Fundamentals:
        """Fundamentals for ticker; raises ProviderError on failure."""

    def try_fetch(self, ticker: str) -> FetchResult:
        try:
            return FetchResult(self.name, fundamentals=self.fetch(ticker))
        except ProviderError as exc:
            return FetchResult(self.name, error=exc)

    # ── helpers ──────────────────────────────────────────────────────

    def error(self, message: str, kind: ErrorKind, **kwargs: Any) -> ProviderError:
        return ProviderError(self.name, message, kind, **kwargs)

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return fetch_json(
            self.http, url, self.name,
            params=params, headers=headers, timeout=self.settings.request_timeout,
        )

    def gather(self, calls: list[Callable[[], T]]) -> list[T]:
        return gather(calls, max_workers=self.settings.fanout_workers)
