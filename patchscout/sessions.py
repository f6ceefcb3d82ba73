"""
Per-domain session state and request pacing.

One DomainSession per host lives for a whole batch run. It carries the
cookies collected from successful responses and the time of the last
successful request, so consecutive URLs on the same vendor look like one
browsing session rather than unrelated hits. Pacing counts every request,
failed or not, so its clock lives on the DomainRateLimiter instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainSession:
    """Cookie jar and pacing state for one host."""

    host: str
    cookie_jar: Dict[str, str] = field(default_factory=dict)
    last_request_ts: float = 0.0

    def absorb_cookies(self, cookies: Mapping[str, str]) -> None:
        """Merge response cookies into the jar (last write wins)."""
        for name, value in cookies.items():
            if value == "":
                self.cookie_jar.pop(name, None)
            else:
                self.cookie_jar[name] = value


class DomainRateLimiter:
    """
    Hands out DomainSessions and enforces a minimum interval per host.

    Also owns one asyncio.Lock per host; the batch coordinator holds it while
    a URL for that host is in flight so session state is never mutated by two
    attempts at once.
    """

    def __init__(
        self,
        min_interval_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ):
        self.min_interval_ms = min_interval_ms
        self._clock = clock
        self._sleep = sleep
        self._sessions: Dict[str, DomainSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_sent: Dict[str, float] = {}
        self._sent: Dict[str, int] = {}

    def session_for(self, host: str) -> DomainSession:
        """Get (or create) the session for a host."""
        host = (host or "").lower()
        session = self._sessions.get(host)
        if session is None:
            session = DomainSession(host=host)
            self._sessions[host] = session
        return session

    def lock_for(self, host: str) -> asyncio.Lock:
        host = (host or "").lower()
        lock = self._locks.get(host)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[host] = lock
        return lock

    def requests_sent(self, host: str) -> int:
        return self._sent.get((host or "").lower(), 0)

    @property
    def sessions(self) -> Dict[str, DomainSession]:
        return dict(self._sessions)

    async def wait_turn(self, session: Optional[DomainSession]) -> float:
        """
        Sleep until the host's minimum interval has elapsed since its last
        request, then record this one. Returns the delay applied in
        milliseconds.
        """
        if session is None:
            return 0.0
        delay_ms = 0.0
        host = session.host
        last = self._last_sent.get(host)
        if last is not None:
            elapsed_ms = (self._clock() - last) * 1000
            if elapsed_ms < self.min_interval_ms:
                delay_ms = self.min_interval_ms - elapsed_ms
                logger.debug("Pacing %s: waiting %.0fms", host, delay_ms)
                await self._sleep(delay_ms / 1000)
        self._last_sent[host] = self._clock()
        self._sent[host] = self._sent.get(host, 0) + 1
        return delay_ms
