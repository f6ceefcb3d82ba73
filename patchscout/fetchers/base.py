"""
Base fetcher interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Set

from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy
from patchscout.sessions import DomainSession

logger = logging.getLogger(__name__)

_reported_unavailable: Set[str] = set()


def report_unavailable(capability: str, reason: str) -> None:
    """Log a missing optional capability once per process."""
    if capability in _reported_unavailable:
        return
    _reported_unavailable.add(capability)
    logger.warning("%s unavailable: %s", capability, reason)


class Fetcher(ABC):
    """
    One fetch strategy.

    Implementations never raise for per-URL problems; everything is reported
    through the returned FetchAttemptResult.
    """

    strategy: FetchStrategy = FetchStrategy.HTTP

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def fetch(
        self,
        url: str,
        session: Optional[DomainSession] = None,
        attempt: int = 1,
    ) -> FetchAttemptResult:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held by the fetcher."""

    def unavailable(self, url: str, reason: str) -> FetchAttemptResult:
        return FetchAttemptResult(
            url=url,
            strategy=self.strategy,
            outcome=FetchOutcome.UNAVAILABLE,
            error=reason,
            error_kind=ErrorKind.UNAVAILABLE,
        )
