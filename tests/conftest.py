"""
Shared fixtures: quiet settings, a recording sleep, fake fetchers and a
context factory. Nothing here touches the network.
"""

import dataclasses
import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from patchscout.config import Settings
from patchscout.context import build_context
from patchscout.fetchers.base import Fetcher
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays in seconds."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


Page = Union[FetchAttemptResult, List[FetchAttemptResult], Callable[[str], FetchAttemptResult], None]


class FakeFetcher(Fetcher):
    """
    Serves canned results per URL. A list is indexed by attempt number (the
    last entry repeats); URLs without a page report the strategy unavailable.
    """

    def __init__(self, strategy: FetchStrategy, pages: Optional[Dict[str, Page]] = None, default: Page = None):
        self.strategy = strategy
        self.pages = dict(pages or {})
        self.default = default
        self.calls: List[tuple] = []
        self.closed = False

    async def fetch(self, url, session=None, attempt=1):
        self.calls.append((url, attempt))
        page = self.pages.get(url, self.default)
        if isinstance(page, list):
            page = page[min(attempt, len(page)) - 1]
        if callable(page):
            page = page(url)
        if page is None:
            return self.unavailable(url, "fake fetcher has no page")
        return dataclasses.replace(page, url=url, strategy=self.strategy, cookies=dict(page.cookies))

    async def close(self):
        self.closed = True

    def urls_fetched(self) -> List[str]:
        return [url for url, _ in self.calls]


def html_page(body: str, status: int = 200, cookies: Optional[Dict[str, str]] = None) -> FetchAttemptResult:
    return FetchAttemptResult(
        url="",
        strategy=FetchStrategy.HTTP,
        outcome=FetchOutcome.SUCCESS,
        status_code=status,
        content=body.encode("utf-8"),
        content_type="text/html; charset=utf-8",
        cookies=cookies or {},
    )


def json_page(payload: Any) -> FetchAttemptResult:
    return FetchAttemptResult(
        url="",
        strategy=FetchStrategy.API,
        outcome=FetchOutcome.SUCCESS,
        status_code=200,
        content=json.dumps(payload).encode("utf-8"),
        content_type="application/json",
        json_data=payload,
    )


def failed_page(kind: ErrorKind, status: int = 0, error: str = "") -> FetchAttemptResult:
    outcome = FetchOutcome.BLOCKED if kind == ErrorKind.BLOCKED else FetchOutcome.FAILED
    return FetchAttemptResult(
        url="",
        strategy=FetchStrategy.HTTP,
        outcome=outcome,
        status_code=status,
        error=error or (f"HTTP {status}" if status else kind.value),
        error_kind=kind,
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        first_request_delay_min_ms=0,
        first_request_delay_max_ms=0,
        min_host_interval_ms=0,
        use_browser=False,
        use_vendor_apis=False,
    )


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def pages():
    """Factories for canned fetch results."""
    class Pages:
        html = staticmethod(html_page)
        json = staticmethod(json_page)
        failed = staticmethod(failed_page)

    return Pages


@pytest.fixture
def make_context(settings, sleep):
    """
    Build a ScrapeContext whose three strategies are FakeFetchers (unless
    given). Keyword arguments override settings fields.
    """
    def factory(fetchers: Optional[Dict[FetchStrategy, Fetcher]] = None, **overrides):
        fakes: Dict[FetchStrategy, Fetcher] = {s: FakeFetcher(s) for s in FetchStrategy}
        fakes.update(fetchers or {})
        ctx_settings = settings.model_copy(update=overrides) if overrides else settings
        return build_context(settings=ctx_settings, fetchers=fakes, sleep=sleep)

    return factory
