"""
Batch coordinator for PatchScout runs.

Deduplicates reference URLs across rows, runs one pipeline per unique URL,
and fans the results back out to rows. URLs are grouped by host: each host's
URLs run one after another inside a single worker (sharing that host's
DomainSession), while different hosts run concurrently up to max_workers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from patchscout.config import Settings
from patchscout.context import ScrapeContext, build_context
from patchscout.errors import BatchInputError
from patchscout.fetchers.api import VendorApiClient
from patchscout.fetchers.browser import Renderer
from patchscout.models import (
    AdvisoryResult,
    AdvisoryRow,
    AdvisoryStatus,
    BatchSummary,
    RowResult,
    host_of,
    now_utc_iso,
)
from patchscout.pipeline import AdvisoryPipeline, PipelineState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    total: int
    url: str
    status: AdvisoryStatus


ProgressCallback = Callable[[ProgressEvent], Any]


# ----------------------------- Input handling -----------------------------

def unique_urls(urls: Iterable[Any]) -> List[str]:
    """Trimmed, non-empty URLs in first-seen order. Non-strings fail the batch."""
    if isinstance(urls, (str, bytes)) or not isinstance(urls, (list, tuple)):
        raise BatchInputError(f"Expected a list of URL strings, got {type(urls).__name__}")
    seen: Dict[str, None] = {}
    for i, url in enumerate(urls):
        if not isinstance(url, str):
            raise BatchInputError(f"URL #{i} is {type(url).__name__}, not a string")
        url = url.strip()
        if url:
            seen.setdefault(url, None)
    return list(seen)


def coerce_rows(rows: Any) -> List[AdvisoryRow]:
    """Accept AdvisoryRow objects or dicts with a RefUrls column."""
    if not isinstance(rows, (list, tuple)):
        raise BatchInputError(f"Expected a list of rows, got {type(rows).__name__}")
    out: List[AdvisoryRow] = []
    for i, row in enumerate(rows):
        if isinstance(row, AdvisoryRow):
            out.append(row)
        elif isinstance(row, Mapping):
            ref_urls = row.get("RefUrls", row.get("ref_urls", ""))
            if ref_urls is None:
                ref_urls = ""
            if not isinstance(ref_urls, str):
                raise BatchInputError(f"Row #{i}: RefUrls must be a string")
            row_id = row.get("row_id", row.get("CVE", row.get("id", i)))
            out.append(AdvisoryRow(row_id=str(row_id), ref_urls=ref_urls))
        else:
            raise BatchInputError(f"Row #{i} is {type(row).__name__}, not a row")
    return out


def group_by_host(urls: List[str]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    for url in urls:
        groups.setdefault(host_of(url), []).append(url)
    return groups


# ----------------------------- Row aggregation -----------------------------

def row_status(results: List[AdvisoryResult]) -> AdvisoryStatus:
    statuses = {r.status for r in results}
    for status in (AdvisoryStatus.SUCCESS, AdvisoryStatus.BLOCKED, AdvisoryStatus.EMPTY):
        if status in statuses:
            return status
    if not results:
        return AdvisoryStatus.EMPTY
    return AdvisoryStatus.FAILED


def aggregate_row(row: AdvisoryRow, results: Mapping[str, AdvisoryResult], delimiter: str = " | ") -> RowResult:
    """Union of the row's per-URL results."""
    row_results = [results[u] for u in dict.fromkeys(row.urls) if u in results]
    links: Dict[str, None] = {}
    summaries: List[str] = []
    for result in row_results:
        if result.record is None:
            continue
        for link in result.record.download_links:
            links.setdefault(link, None)
        text = result.record.summary_text()
        if text and text not in summaries:
            summaries.append(text)
    return RowResult(
        row_id=row.row_id,
        status=row_status(row_results),
        download_links=delimiter.join(links),
        summary=" || ".join(summaries),
        timestamp=now_utc_iso(),
        results=row_results,
    )


# ----------------------------- Coordinator -----------------------------

class BatchCoordinator:
    """Runs a batch of URLs (or rows) through the advisory pipeline."""

    def __init__(self, context: ScrapeContext, pipeline: Optional[AdvisoryPipeline] = None):
        self.context = context
        self.pipeline = pipeline or AdvisoryPipeline(context)

    async def run(
        self,
        urls: List[str],
        progress: Optional[ProgressCallback] = None,
        progress_queue: Optional[asyncio.Queue] = None,
    ) -> BatchSummary:
        unique = unique_urls(urls)
        groups = group_by_host(unique)
        settings = self.context.settings
        limiter = self.context.rate_limiter
        summary = BatchSummary()
        total = len(unique)
        semaphore = asyncio.Semaphore(settings.max_workers)

        logger.info("Processing %d unique URLs across %d hosts", total, len(groups))

        async def report(result: AdvisoryResult) -> None:
            event = ProgressEvent(completed=len(summary.results), total=total, url=result.url, status=result.status)
            if progress is not None:
                try:
                    ret = progress(event)
                    if inspect.isawaitable(ret):
                        await ret
                except Exception as e:
                    logger.warning("Progress callback failed for %s: %s", result.url, e)
            if progress_queue is not None:
                progress_queue.put_nowait(event)

        async def host_worker(host: str, host_urls: List[str]) -> None:
            async with semaphore:
                session = limiter.session_for(host)
                for url in host_urls:
                    # One attempt at a time per DomainSession.
                    async with limiter.lock_for(host):
                        result = await self.pipeline.run(url, session=session)
                    summary.pipeline_runs += 1
                    summary.results[url] = result
                    await report(result)

        tasks = [asyncio.create_task(host_worker(h, us)) for h, us in groups.items()]
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=settings.batch_timeout_s)
            if pending:
                summary.timed_out = True
                logger.warning("Batch timeout after %ss, cancelling %d host workers", settings.batch_timeout_s, len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.error("Host worker failed: %s", task.exception())

        for url in unique:
            if url in summary.results:
                continue
            if summary.timed_out:
                diagnostic = f"Batch timeout after {settings.batch_timeout_s}s before this URL finished"
            else:
                diagnostic = "Host worker stopped before this URL finished"
            summary.results[url] = AdvisoryResult(
                url=url,
                status=AdvisoryStatus.FAILED,
                states=[PipelineState.START.value, PipelineState.FAILED.value],
                diagnostic=diagnostic,
            )
            await report(summary.results[url])

        # Keep input order.
        summary.results = {url: summary.results[url] for url in unique}
        summary.manual_review = [url for url, r in summary.results.items() if r.needs_manual_review]
        summary.finished_at = now_utc_iso()
        logger.info("Batch finished: %s", summary.counts)
        return summary

    async def run_rows(
        self,
        rows: List[Any],
        progress: Optional[ProgressCallback] = None,
        progress_queue: Optional[asyncio.Queue] = None,
    ) -> BatchSummary:
        parsed = coerce_rows(rows)
        urls = [u for row in parsed for u in row.urls]
        summary = await self.run(urls, progress=progress, progress_queue=progress_queue)
        delimiter = self.context.settings.link_delimiter
        summary.rows = [aggregate_row(row, summary.results, delimiter) for row in parsed]
        return summary


# ----------------------------- Entry points -----------------------------

async def run_batch(
    urls: List[str],
    settings: Optional[Settings] = None,
    renderer: Optional[Renderer] = None,
    api_clients: Optional[List[VendorApiClient]] = None,
    progress: Optional[ProgressCallback] = None,
    progress_queue: Optional[asyncio.Queue] = None,
    rows: Optional[List[Any]] = None,
) -> BatchSummary:
    """Build a context, run the batch, always close the fetchers."""
    context = build_context(settings=settings, renderer=renderer, api_clients=api_clients)
    async with context:
        coordinator = BatchCoordinator(context)
        if rows is not None:
            return await coordinator.run_rows(rows, progress=progress, progress_queue=progress_queue)
        return await coordinator.run(urls, progress=progress, progress_queue=progress_queue)


def process_batch(
    urls: List[str],
    settings: Optional[Settings] = None,
    renderer: Optional[Renderer] = None,
    api_clients: Optional[List[VendorApiClient]] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchSummary:
    """Blocking wrapper: results keyed by URL."""
    unique_urls(urls)
    return asyncio.run(run_batch(urls, settings=settings, renderer=renderer, api_clients=api_clients, progress=progress))


def process_rows(
    rows: List[Any],
    settings: Optional[Settings] = None,
    renderer: Optional[Renderer] = None,
    api_clients: Optional[List[VendorApiClient]] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchSummary:
    """Blocking wrapper for rows with pipe-delimited RefUrls."""
    coerce_rows(rows)
    return asyncio.run(
        run_batch([], settings=settings, renderer=renderer, api_clients=api_clients, progress=progress, rows=rows)
    )
