"""
Direct HTTP fetcher with browser-like headers, per-host cookies and pacing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import socket
import time
from typing import Any, Dict, Optional, Tuple

import aiohttp

from patchscout.fetchers.base import Fetcher
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy, origin_of
from patchscout.sessions import DomainRateLimiter, DomainSession

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

BINARY_CONTENT_TYPES = ("image/", "video/", "audio/", "application/octet-stream", "application/zip")


def status_outcome(status: int) -> Tuple[FetchOutcome, ErrorKind]:
    """Classify an HTTP status code."""
    if status == 403:
        return FetchOutcome.BLOCKED, ErrorKind.BLOCKED
    if status == 429:
        return FetchOutcome.FAILED, ErrorKind.RATE_LIMITED
    if status >= 500:
        return FetchOutcome.FAILED, ErrorKind.SERVER_ERROR
    if status >= 400:
        return FetchOutcome.FAILED, ErrorKind.CLIENT_ERROR
    return FetchOutcome.SUCCESS, ErrorKind.NONE


def parse_retry_after(header: str) -> Optional[int]:
    """Retry-After in milliseconds (seconds form only)."""
    if not header:
        return None
    try:
        return max(0, int(header.strip())) * 1000
    except ValueError:
        return None


class HttpFetcher(Fetcher):
    """
    Async HTTP fetcher.

    Sends a realistic browser header set with a Referer pointing at the URL's
    own origin, replays the host's cookies from its DomainSession and returns
    new cookies on the result. Retries are the RetryExecutor's job; fetch()
    performs exactly one request.
    """

    strategy = FetchStrategy.HTTP

    def __init__(
        self,
        timeout_s: float = 30,
        user_agent: str = DEFAULT_USER_AGENT,
        first_request_delay_ms: Tuple[int, int] = (500, 1500),
        rate_limiter: Optional[DomainRateLimiter] = None,
        sleep=asyncio.sleep,
    ):
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self.first_request_delay_ms = first_request_delay_ms
        self.rate_limiter = rate_limiter
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpFetcher":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=50,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            # Cookies live in DomainSession, not in the client session.
            self._session = aiohttp.ClientSession(
                connector=connector,
                cookie_jar=aiohttp.DummyCookieJar(),
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def browser_headers(self, url: str) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": origin_of(url),
            "Upgrade-Insecure-Requests": "1",
        }

    async def fetch(
        self,
        url: str,
        session: Optional[DomainSession] = None,
        attempt: int = 1,
    ) -> FetchAttemptResult:
        """Fetch an advisory page."""
        if attempt == 1:
            low, high = self.first_request_delay_ms
            if high > 0:
                await self._sleep(random.uniform(low, high) / 1000)
        return await self.request(url, session=session, headers=self.browser_headers(url))

    async def fetch_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[DomainSession] = None,
    ) -> FetchAttemptResult:
        """Fetch and expect a JSON response (used by vendor API clients)."""
        merged = {"User-Agent": self.user_agent, "Accept": "application/json"}
        merged.update(headers or {})
        return await self.request(url, session=session, headers=merged, strategy=FetchStrategy.API)

    async def request(
        self,
        url: str,
        session: Optional[DomainSession] = None,
        headers: Optional[Dict[str, str]] = None,
        strategy: Optional[FetchStrategy] = None,
    ) -> FetchAttemptResult:
        """Perform a single GET and classify the outcome."""
        strategy = strategy or self.strategy
        if self._session is None or self._session.closed:
            await self.start()
        if self.rate_limiter is not None:
            await self.rate_limiter.wait_turn(session)

        start_time = time.time()

        def failed(kind: ErrorKind, error: str, status: int = 0) -> FetchAttemptResult:
            return FetchAttemptResult(
                url=url,
                strategy=strategy,
                outcome=FetchOutcome.FAILED,
                status_code=status,
                error=error,
                error_kind=kind,
                duration_ms=(time.time() - start_time) * 1000,
            )

        headers = dict(headers or {})
        if session is not None and session.cookie_jar:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in session.cookie_jar.items())

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s)
            async with self._session.get(
                url,
                timeout=timeout,
                headers=headers,
                allow_redirects=True,
            ) as resp:
                cookies = {name: morsel.value for name, morsel in resp.cookies.items()}
                content_type = resp.headers.get("Content-Type", "")
                outcome, kind = status_outcome(resp.status)

                if outcome != FetchOutcome.SUCCESS:
                    if outcome == FetchOutcome.BLOCKED:
                        logger.warning("Blocked (HTTP 403) by %s", url)
                    return FetchAttemptResult(
                        url=url,
                        strategy=strategy,
                        outcome=outcome,
                        status_code=resp.status,
                        content_type=content_type,
                        error=f"HTTP {resp.status}",
                        error_kind=kind,
                        retry_after_ms=parse_retry_after(resp.headers.get("Retry-After", "")),
                        cookies=cookies,
                        duration_ms=(time.time() - start_time) * 1000,
                    )

                if any(x in content_type.lower() for x in BINARY_CONTENT_TYPES):
                    return failed(ErrorKind.CONTENT, f"Binary content skipped ({content_type})", resp.status)

                body = await resp.read()

                json_data: Any = None
                if "json" in content_type.lower():
                    try:
                        json_data = json.loads(body.decode(resp.charset or "utf-8", errors="replace"))
                    except (ValueError, LookupError):
                        json_data = None

                return FetchAttemptResult(
                    url=url,
                    strategy=strategy,
                    outcome=FetchOutcome.SUCCESS,
                    status_code=resp.status,
                    content=body,
                    content_type=content_type,
                    json_data=json_data,
                    cookies=cookies,
                    duration_ms=(time.time() - start_time) * 1000,
                )

        except asyncio.TimeoutError:
            return failed(ErrorKind.TIMEOUT, "Timeout")

        except aiohttp.InvalidURL as e:
            return failed(ErrorKind.INVALID_INPUT, f"Invalid URL: {e}")

        except aiohttp.ClientConnectorError as e:
            if isinstance(e.os_error, socket.gaierror):
                return failed(ErrorKind.DNS, f"DNS resolution failed for {e.host}")
            return failed(ErrorKind.CONNECTION, str(e) or type(e).__name__)

        except aiohttp.ClientError as e:
            return failed(ErrorKind.CONNECTION, str(e) or type(e).__name__)
