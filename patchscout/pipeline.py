"""
Per-URL advisory pipeline.

    Start -> VendorResolved -> Fetching -> {FetchSucceeded | FetchFailed |
    CapabilityUnavailable | Blocked} -> Extracted -> Scored -> Done

FetchFailed and CapabilityUnavailable move on to the profile's next fetch
strategy; when none is left the URL ends Failed. Blocked (HTTP 403) ends the
URL at once. Every problem is returned as an AdvisoryResult, never raised.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from patchscout.context import ScrapeContext
from patchscout.errors import ExtractionEmpty, FatalInputError
from patchscout.extract import extract_advisory
from patchscout.models import (
    AdvisoryRecord,
    AdvisoryResult,
    AdvisoryStatus,
    AdvisoryURL,
    Confidence,
    ErrorKind,
    FetchAttemptResult,
    FetchOutcome,
    FetchStrategy,
)
from patchscout.retry import classify
from patchscout.sessions import DomainSession

logger = logging.getLogger(__name__)

# Below this many bytes an HTML response is a client-rendered shell.
SKELETON_BYTES = 5000


class PipelineState(str, Enum):
    START = "Start"
    VENDOR_RESOLVED = "VendorResolved"
    FETCHING = "Fetching"
    FETCH_SUCCEEDED = "FetchSucceeded"
    FETCH_FAILED = "FetchFailed"
    CAPABILITY_UNAVAILABLE = "CapabilityUnavailable"
    BLOCKED = "Blocked"
    EXTRACTED = "Extracted"
    SCORED = "Scored"
    DONE = "Done"
    FAILED = "Failed"


_OUTCOME_STATES = {
    FetchOutcome.SUCCESS: PipelineState.FETCH_SUCCEEDED,
    FetchOutcome.FAILED: PipelineState.FETCH_FAILED,
    FetchOutcome.UNAVAILABLE: PipelineState.CAPABILITY_UNAVAILABLE,
    FetchOutcome.BLOCKED: PipelineState.BLOCKED,
}


def grade_confidence(record: AdvisoryRecord, fetch: FetchAttemptResult) -> Confidence:
    """
    Low: nothing actionable. High: a vendor API produced ids or links, or a
    full page yielded ids plus links it literally contained. Medium otherwise
    (skeleton pages, links synthesized from ids only).
    """
    if not record.patch_ids and not record.download_links:
        return Confidence.LOW
    if fetch.strategy == FetchStrategy.API:
        return Confidence.HIGH
    if record.patch_ids and record.literal_links and fetch.size_bytes >= SKELETON_BYTES:
        return Confidence.HIGH
    return Confidence.MEDIUM


def describe_failure(attempt: FetchAttemptResult) -> str:
    error_class = classify(attempt)
    label = error_class.__name__ if error_class else "Success"
    return f"{attempt.strategy.value}: {label}: {attempt.error or attempt.outcome.value}"


class AdvisoryPipeline:
    """Runs one URL through vendor resolution, fetching, extraction and scoring."""

    def __init__(self, context: ScrapeContext):
        self.context = context

    async def run(self, url: str, session: Optional[DomainSession] = None) -> AdvisoryResult:
        states: List[str] = [PipelineState.START.value]

        def enter(state: PipelineState) -> None:
            states.append(state.value)

        try:
            target = AdvisoryURL.parse(url)
        except FatalInputError as e:
            enter(PipelineState.FAILED)
            return AdvisoryResult(
                url=str(url),
                status=AdvisoryStatus.FAILED,
                states=states,
                diagnostic=f"FatalInputError: {e}",
            )

        profile = self.context.registry.resolve(target.url)
        enter(PipelineState.VENDOR_RESOLVED)
        if session is None:
            session = self.context.rate_limiter.session_for(target.host)

        attempts: List[FetchAttemptResult] = []
        fetched: Optional[FetchAttemptResult] = None

        for strategy in profile.fetch_priority:
            enter(PipelineState.FETCHING)
            result = await self._fetch(target.url, strategy, session)
            attempts.append(result)
            enter(_OUTCOME_STATES[result.outcome])

            if result.success:
                fetched = result
                break

            if result.outcome == FetchOutcome.BLOCKED:
                logger.warning("Blocked: %s (%s) needs manual review", target.url, strategy.value)
                return AdvisoryResult(
                    url=target.url,
                    status=AdvisoryStatus.BLOCKED,
                    vendor=profile.name,
                    strategy_used=strategy,
                    attempts=attempts,
                    states=states,
                    diagnostic=f"AntiBotBlocked: {result.error or 'HTTP 403'} via {strategy.value}; manual review needed",
                )

            logger.debug("%s via %s: %s, trying next strategy", target.url, strategy.value, result.error)

        if fetched is None:
            enter(PipelineState.FAILED)
            return AdvisoryResult(
                url=target.url,
                status=AdvisoryStatus.FAILED,
                vendor=profile.name,
                attempts=attempts,
                states=states,
                diagnostic="; ".join(describe_failure(a) for a in attempts) or "No fetch strategy configured",
            )

        content = fetched.json_data if fetched.strategy == FetchStrategy.API and fetched.json_data is not None else fetched.content
        try:
            record = extract_advisory(content, target.url, profile, self.context.extractors)
        except Exception as e:
            logger.warning("Extraction failed for %s: %s", target.url, e, exc_info=True)
            enter(PipelineState.FAILED)
            return AdvisoryResult(
                url=target.url,
                status=AdvisoryStatus.FAILED,
                vendor=profile.name,
                strategy_used=fetched.strategy,
                attempts=attempts,
                states=states,
                diagnostic=f"Extraction error ({profile.extractor}): {type(e).__name__}: {e}",
            )
        enter(PipelineState.EXTRACTED)

        record.confidence = grade_confidence(record, fetched)
        quality = self.context.scorer.score(record)
        enter(PipelineState.SCORED)
        enter(PipelineState.DONE)

        if record.is_empty:
            status = AdvisoryStatus.EMPTY
            diagnostic = f"{ExtractionEmpty.__name__}: no remediation fields found via {fetched.strategy.value}"
        else:
            status = AdvisoryStatus.SUCCESS
            diagnostic = (
                f"Extracted via {fetched.strategy.value}: {len(record.patch_ids)} patch ids, "
                f"{len(record.download_links)} links, score {quality.score:.0f}, confidence {record.confidence.value}"
            )
        logger.info("%s: %s (%s)", target.url, status.value, diagnostic)

        return AdvisoryResult(
            url=target.url,
            status=status,
            record=record,
            quality=quality,
            vendor=profile.name,
            strategy_used=fetched.strategy,
            attempts=attempts,
            states=states,
            diagnostic=diagnostic,
        )

    async def _fetch(self, url: str, strategy: FetchStrategy, session: DomainSession) -> FetchAttemptResult:
        fetcher = self.context.fetcher_for(strategy)
        if fetcher is None:
            return FetchAttemptResult(
                url=url,
                strategy=strategy,
                outcome=FetchOutcome.UNAVAILABLE,
                error=f"No {strategy.value} fetcher configured",
                error_kind=ErrorKind.UNAVAILABLE,
            )

        async def attempt(n: int) -> FetchAttemptResult:
            return await fetcher.fetch(url, session=session, attempt=n)

        try:
            return await self.context.executor.execute(attempt, session=session)
        except Exception as e:
            logger.warning("%s fetcher raised for %s: %s", strategy.value, url, e, exc_info=True)
            return FetchAttemptResult(
                url=url,
                strategy=strategy,
                outcome=FetchOutcome.FAILED,
                error=f"{type(e).__name__}: {e}",
                error_kind=ErrorKind.OTHER,
            )
