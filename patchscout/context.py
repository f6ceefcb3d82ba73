"""
Per-batch scrape context.

Everything a pipeline run needs is carried explicitly in one ScrapeContext:
settings, vendor registry, extractor table, scorer, the per-host rate
limiter, the retry executor and one fetcher per strategy. Nothing here is a
process-wide singleton; tests build a context with fake fetchers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from patchscout.config import Settings, get_settings
from patchscout.extract import EXTRACTORS, Extractor
from patchscout.fetchers.api import ApiFetcher, GitHubApiClient, MsrcApiClient, VendorApiClient
from patchscout.fetchers.base import Fetcher
from patchscout.fetchers.browser import BrowserConfig, BrowserFetcher, PlaywrightRenderer, Renderer
from patchscout.fetchers.http import HttpFetcher
from patchscout.models import FetchStrategy
from patchscout.retry import RetryExecutor, RetryPolicy
from patchscout.scoring import QualityScorer
from patchscout.sessions import DomainRateLimiter
from patchscout.vendors.registry import VendorRegistry

logger = logging.getLogger(__name__)


@dataclass
class ScrapeContext:
    settings: Settings
    registry: VendorRegistry
    scorer: QualityScorer
    rate_limiter: DomainRateLimiter
    executor: RetryExecutor
    fetchers: Dict[FetchStrategy, Fetcher] = field(default_factory=dict)
    extractors: Dict[str, Extractor] = field(default_factory=lambda: dict(EXTRACTORS))

    def fetcher_for(self, strategy: FetchStrategy) -> Optional[Fetcher]:
        return self.fetchers.get(strategy)

    async def start(self) -> None:
        http = self.fetchers.get(FetchStrategy.HTTP)
        if isinstance(http, HttpFetcher):
            await http.start()

    async def close(self) -> None:
        """Close every fetcher once (the API fetcher shares the HTTP client)."""
        closed = set()
        for fetcher in self.fetchers.values():
            if id(fetcher) in closed:
                continue
            closed.add(id(fetcher))
            try:
                await fetcher.close()
            except Exception as e:
                logger.debug("Error closing %s fetcher: %s", fetcher.strategy.value, e)

    async def __aenter__(self) -> "ScrapeContext":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


def default_api_clients(settings: Settings) -> List[VendorApiClient]:
    if not settings.use_vendor_apis:
        return []
    return [
        MsrcApiClient(api_url=settings.msrc_api_url),
        GitHubApiClient(token=settings.github_token, api_url=settings.github_api_url),
    ]


def build_context(
    settings: Optional[Settings] = None,
    renderer: Optional[Renderer] = None,
    api_clients: Optional[List[VendorApiClient]] = None,
    fetchers: Optional[Dict[FetchStrategy, Fetcher]] = None,
    sleep=asyncio.sleep,
) -> ScrapeContext:
    """
    Assemble a ScrapeContext from settings.

    `fetchers` replaces the stock fetchers per strategy (used by tests).
    A Playwright renderer is created only when the browser is enabled and no
    renderer was injected.
    """
    settings = settings or get_settings()
    rate_limiter = DomainRateLimiter(min_interval_ms=settings.min_host_interval_ms, sleep=sleep)

    http = HttpFetcher(
        timeout_s=settings.request_timeout_s,
        user_agent=settings.user_agent,
        first_request_delay_ms=settings.first_request_delay_ms,
        rate_limiter=rate_limiter,
        sleep=sleep,
    )

    if renderer is None and settings.use_browser:
        renderer = PlaywrightRenderer(BrowserConfig(
            headless=True,
            timeout_ms=settings.browser_timeout_s * 1000,
            user_agent=settings.user_agent,
        ))

    stock: Dict[FetchStrategy, Fetcher] = {
        FetchStrategy.API: ApiFetcher(
            http,
            clients=default_api_clients(settings) if api_clients is None else api_clients,
        ),
        FetchStrategy.BROWSER: BrowserFetcher(
            renderer=renderer,
            settle_ms=settings.browser_settle_ms,
            rate_limiter=rate_limiter,
        ),
        FetchStrategy.HTTP: http,
    }
    stock.update(fetchers or {})

    return ScrapeContext(
        settings=settings,
        registry=VendorRegistry(browser_hosts=settings.browser_hosts or ()),
        scorer=QualityScorer(settings.score_threshold),
        rate_limiter=rate_limiter,
        executor=RetryExecutor(RetryPolicy.from_settings(settings), sleep=sleep),
        fetchers=stock,
    )
