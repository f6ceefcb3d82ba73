"""
Headless-browser fetcher for client-rendered advisory pages.

The browser itself is an injected Renderer. PlaywrightRenderer is the stock
implementation; when it (or any renderer) is missing, the fetcher reports a
"capability unavailable" outcome so the pipeline moves on to the next
strategy without spending retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from patchscout.fetchers.base import Fetcher, report_unavailable
from patchscout.fetchers.http import DEFAULT_USER_AGENT, status_outcome
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy
from patchscout.sessions import DomainRateLimiter, DomainSession

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_MS = 8000


@dataclass
class RenderedPage:
    content: str
    status_code: int = 200


@runtime_checkable
class Renderer(Protocol):
    """Anything that can render a URL into its final DOM."""

    @property
    def is_available(self) -> bool: ...

    async def render(self, url: str, wait_ms: int) -> RenderedPage: ...


@dataclass
class BrowserConfig:
    """Browser configuration."""
    headless: bool = True
    timeout_ms: int = 45000
    block_resources: bool = True  # Block images/fonts/media for speed
    user_agent: str = DEFAULT_USER_AGENT


class PlaywrightRenderer:
    """
    Playwright-based renderer (Chromium).

    Falls back gracefully if Playwright is not installed or the browser
    cannot be launched.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._browser = None
        self._context = None
        self._playwright = None
        self._available: Optional[bool] = None
        self._start_lock = asyncio.Lock()

    @property
    def is_available(self) -> bool:
        """Check if Playwright is importable (and has not failed to start)."""
        if self._available is None:
            try:
                from playwright.async_api import async_playwright  # noqa
                self._available = True
            except ImportError:
                self._available = False
        return self._available

    async def start(self) -> bool:
        """
        Initialize the browser.
        Returns True if successful, False if Playwright is not available.
        """
        if not self.is_available:
            return False

        async with self._start_lock:
            if self._browser is not None:
                return True
            try:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless,
                )
                self._context = await self._browser.new_context(
                    user_agent=self.config.user_agent,
                    viewport={"width": 1920, "height": 1080},
                    java_script_enabled=True,
                )
                if self.config.block_resources:
                    await self._context.route(
                        "**/*.{png,jpg,jpeg,gif,webp,svg,ico,woff,woff2,ttf,eot}",
                        lambda route: route.abort(),
                    )
                return True
            except Exception as e:
                logger.warning("Failed to start browser: %s", e)
                self._available = False
                return False

    async def close(self) -> None:
        """Close the browser."""
        try:
            if self._context:
                await self._context.close()
                self._context = None
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
        except Exception as e:
            logger.debug("Error while closing browser: %s", e)

    async def render(self, url: str, wait_ms: int) -> RenderedPage:
        """Load the page, let client-side scripts settle, return the DOM."""
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        if self._browser is None and not await self.start():
            raise RuntimeError("Browser could not be started")

        page = await self._context.new_page()
        try:
            try:
                response = await page.goto(
                    url,
                    timeout=self.config.timeout_ms,
                    wait_until="domcontentloaded",
                )
            except PlaywrightTimeoutError as e:
                raise asyncio.TimeoutError(str(e)) from e

            status = response.status if response else 0
            # JS-heavy vendor portals keep loading long after DOMContentLoaded.
            await asyncio.sleep(wait_ms / 1000)
            content = await page.content()
            return RenderedPage(content=content, status_code=status)
        finally:
            await page.close()


class BrowserFetcher(Fetcher):
    """Fetches fully rendered DOM through an injected Renderer."""

    strategy = FetchStrategy.BROWSER

    def __init__(
        self,
        renderer: Optional[Renderer] = None,
        settle_ms: int = DEFAULT_SETTLE_MS,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        self.renderer = renderer
        self.settle_ms = settle_ms
        self.rate_limiter = rate_limiter

    @property
    def is_available(self) -> bool:
        return self.renderer is not None and self.renderer.is_available

    async def fetch(
        self,
        url: str,
        session: Optional[DomainSession] = None,
        attempt: int = 1,
    ) -> FetchAttemptResult:
        if self.renderer is None:
            report_unavailable("Headless browser", "no renderer configured")
            return self.unavailable(url, "Headless browser not configured")
        if not self.renderer.is_available:
            report_unavailable(
                "Headless browser",
                "Playwright not installed. Install with: pip install playwright && playwright install chromium",
            )
            return self.unavailable(url, "Headless browser not available")

        if self.rate_limiter is not None:
            await self.rate_limiter.wait_turn(session)

        start_time = time.time()
        try:
            page = await self.renderer.render(url, self.settle_ms)
        except asyncio.TimeoutError:
            return FetchAttemptResult(
                url=url,
                strategy=self.strategy,
                error="Browser timeout",
                error_kind=ErrorKind.TIMEOUT,
                duration_ms=(time.time() - start_time) * 1000,
            )
        except Exception as e:
            if not self.renderer.is_available:
                report_unavailable("Headless browser", str(e))
                return self.unavailable(url, f"Headless browser not available: {e}")
            return FetchAttemptResult(
                url=url,
                strategy=self.strategy,
                error=f"Browser fetch failed: {e}",
                error_kind=ErrorKind.OTHER,
                duration_ms=(time.time() - start_time) * 1000,
            )

        outcome, kind = status_outcome(page.status_code) if page.status_code else (FetchOutcome.SUCCESS, ErrorKind.NONE)
        content = (page.content or "").encode("utf-8")
        if outcome == FetchOutcome.SUCCESS and not content:
            outcome, kind = FetchOutcome.FAILED, ErrorKind.CONTENT

        return FetchAttemptResult(
            url=url,
            strategy=self.strategy,
            outcome=outcome,
            status_code=page.status_code,
            content=content if outcome == FetchOutcome.SUCCESS else b"",
            content_type="text/html",
            error="" if outcome == FetchOutcome.SUCCESS else (f"HTTP {page.status_code}" if page.status_code >= 400 else "Empty render"),
            error_kind=kind,
            duration_ms=(time.time() - start_time) * 1000,
        )

    async def close(self) -> None:
        close = getattr(self.renderer, "close", None)
        if close is not None:
            await close()
