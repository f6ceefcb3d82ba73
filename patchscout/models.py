"""
Core data models for PatchScout.

Provides:
- AdvisoryURL: validated reference URL with its derived host
- FetchAttemptResult: outcome of one fetch strategy for one URL
- AdvisoryRecord: normalized remediation facts extracted from an advisory
- QualityScore / AdvisoryResult / RowResult / BatchSummary: pipeline outputs
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from patchscout.errors import FatalInputError


# ----------------------------- Enums -----------------------------

class FetchStrategy(str, Enum):
    """How an advisory page is retrieved."""
    API = "api"
    BROWSER = "browser"
    HTTP = "http"


class FetchOutcome(str, Enum):
    """Discriminated outcome of a single fetch attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"


class ErrorKind(str, Enum):
    """Classification of a failed attempt, used by the retry executor."""
    NONE = "none"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    DNS = "dns"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"
    INVALID_INPUT = "invalid_input"
    CONTENT = "content"
    OTHER = "other"


class Confidence(str, Enum):
    """Coarse trust label on an extracted record."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class AdvisoryStatus(str, Enum):
    """Per-URL and per-row status tag surfaced to the output layer."""
    SUCCESS = "Success"
    FAILED = "Failed"
    BLOCKED = "Blocked"
    EMPTY = "Empty"


# ----------------------------- Utilities -----------------------------

def normalize_text(s: str) -> str:
    """Collapse whitespace and strip."""
    return re.sub(r"\s+", " ", (s or "")).strip()


def now_utc() -> datetime:
    """Current UTC datetime."""
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    """Current UTC time as ISO string."""
    return now_utc().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def host_of(url: str) -> str:
    """Lower-cased host of a URL without port, or "" if it has none."""
    try:
        return (urllib.parse.urlsplit((url or "").strip()).hostname or "").lower()
    except ValueError:
        return ""


def origin_of(url: str) -> str:
    """scheme://netloc of a URL, used as a Referer."""
    u = urllib.parse.urlsplit(url)
    return f"{u.scheme}://{u.netloc}/"


def _add_unique(items: List[str], value: Optional[str]) -> bool:
    value = (value or "").strip()
    if not value or value in items:
        return False
    items.append(value)
    return True


# ----------------------------- AdvisoryURL -----------------------------

@dataclass(frozen=True)
class AdvisoryURL:
    """A reference URL read from an input row."""

    url: str
    host: str

    @classmethod
    def parse(cls, raw: str) -> "AdvisoryURL":
        """Validate a raw URL string; raises FatalInputError when unusable."""
        if not isinstance(raw, str):
            raise FatalInputError(f"URL must be a string, got {type(raw).__name__}")
        url = raw.strip()
        if not url:
            raise FatalInputError("Empty URL")
        try:
            parts = urllib.parse.urlsplit(url)
            host = (parts.hostname or "").lower()
        except ValueError as e:
            raise FatalInputError(f"Malformed URL {url!r}: {e}") from e
        if parts.scheme.lower() not in ("http", "https"):
            raise FatalInputError(f"Unsupported URL scheme in {url!r}")
        if not host:
            raise FatalInputError(f"URL has no host: {url!r}")
        return cls(url=url, host=host)

    def __str__(self) -> str:
        return self.url


# ----------------------------- Fetch results -----------------------------

@dataclass
class FetchAttemptResult:
    """Result of fetching one URL with one strategy (possibly after retries)."""

    url: str
    strategy: FetchStrategy
    outcome: FetchOutcome = FetchOutcome.FAILED
    status_code: int = 0
    content: bytes = b""
    content_type: str = ""
    json_data: Any = None
    error: str = ""
    error_kind: ErrorKind = ErrorKind.NONE
    duration_ms: float = 0
    attempts: int = 1
    retry_after_ms: Optional[int] = None
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome == FetchOutcome.SUCCESS

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def describe(self) -> str:
        """Short human-readable line for diagnostics."""
        parts = [f"{self.strategy.value}: {self.outcome.value}"]
        if self.status_code:
            parts.append(f"HTTP {self.status_code}")
        if self.error:
            parts.append(self.error)
        if self.attempts > 1:
            parts.append(f"after {self.attempts} attempts")
        return ", ".join(parts)


# ----------------------------- AdvisoryRecord -----------------------------

@dataclass
class AdvisoryRecord:
    """
    Remediation facts extracted from one advisory.

    `patch_ids` and `download_links` behave as ordered sets: insertion order
    is kept for stable output and duplicates / empty strings are rejected.
    Use add_patch_id() / add_link() rather than appending directly.
    """

    vendor_used: str = "generic"
    patch_ids: List[str] = field(default_factory=list)
    fix_version: str = ""
    affected_versions: str = ""
    remediation_text: str = ""
    download_links: List[str] = field(default_factory=list)
    synthesized_links: List[str] = field(default_factory=list)
    title: str = ""
    confidence: Confidence = Confidence.LOW

    def __post_init__(self):
        patch_ids, links, synthesized = self.patch_ids, self.download_links, self.synthesized_links
        self.patch_ids, self.download_links, self.synthesized_links = [], [], []
        flagged = {(s or "").strip() for s in synthesized}
        for p in patch_ids:
            self.add_patch_id(p)
        for link in list(links) + list(synthesized):
            self.add_link(link, synthesized=(link or "").strip() in flagged)

    def add_patch_id(self, patch_id: str) -> bool:
        return _add_unique(self.patch_ids, patch_id)

    def add_link(self, link: str, synthesized: bool = False) -> bool:
        """
        Add a download link. A link seen literally clears an earlier
        synthesized flag; a synthesized copy never flags a literal one.
        """
        added = _add_unique(self.download_links, link)
        link = (link or "").strip()
        if synthesized and added:
            self.synthesized_links.append(link)
        elif not synthesized and link in self.synthesized_links:
            self.synthesized_links.remove(link)
        return added

    def extend_links(self, links: Iterable[str], synthesized: bool = False) -> None:
        for link in links:
            self.add_link(link, synthesized=synthesized)

    @property
    def literal_links(self) -> List[str]:
        """Links found on the page or in the payload (not derived from ids)."""
        synthesized = set(self.synthesized_links)
        return [link for link in self.download_links if link not in synthesized]

    @property
    def is_empty(self) -> bool:
        return not (
            self.patch_ids
            or self.download_links
            or self.fix_version
            or self.affected_versions
            or self.remediation_text
        )

    def merge(self, other: "AdvisoryRecord") -> "AdvisoryRecord":
        """
        Layer a secondary extraction pass on top of this one.

        Links and patch ids are set-unions (this record's order first);
        scalar fields keep the first non-empty value.
        """
        merged = AdvisoryRecord(
            vendor_used=self.vendor_used or other.vendor_used,
            patch_ids=self.patch_ids + other.patch_ids,
            fix_version=self.fix_version or other.fix_version,
            affected_versions=self.affected_versions or other.affected_versions,
            remediation_text=self.remediation_text or other.remediation_text,
            title=self.title or other.title,
            confidence=self.confidence,
        )
        merged.extend_links(self.download_links)
        merged.extend_links(other.download_links)
        # A link either pass saw literally is not synthesized.
        literal = set(self.literal_links) | set(other.literal_links)
        synthesized = (set(self.synthesized_links) | set(other.synthesized_links)) - literal
        merged.synthesized_links = [link for link in merged.download_links if link in synthesized]
        return merged

    def summary_text(self) -> str:
        """Flattened textual summary for the output layer."""
        parts = []
        if self.patch_ids:
            parts.append("Patches: " + ", ".join(self.patch_ids))
        if self.fix_version:
            parts.append(f"Fixed in: {self.fix_version}")
        if self.affected_versions:
            parts.append(f"Affected: {self.affected_versions}")
        if self.remediation_text:
            parts.append(f"Remediation: {self.remediation_text}")
        return "; ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_used": self.vendor_used,
            "title": self.title,
            "patch_ids": list(self.patch_ids),
            "fix_version": self.fix_version,
            "affected_versions": self.affected_versions,
            "remediation_text": self.remediation_text,
            "download_links": list(self.download_links),
            "synthesized_links": list(self.synthesized_links),
            "confidence": self.confidence.value,
        }


# ----------------------------- Scores & results -----------------------------

@dataclass(frozen=True)
class QualityScore:
    score: float
    issues: List[str]
    is_acceptable: bool


@dataclass
class AdvisoryResult:
    """Everything the pipeline learned about one URL."""

    url: str
    status: AdvisoryStatus
    record: Optional[AdvisoryRecord] = None
    quality: Optional[QualityScore] = None
    vendor: str = ""
    strategy_used: Optional[FetchStrategy] = None
    attempts: List[FetchAttemptResult] = field(default_factory=list)
    states: List[str] = field(default_factory=list)
    diagnostic: str = ""
    finished_at: str = field(default_factory=now_utc_iso)

    @property
    def needs_manual_review(self) -> bool:
        return self.status == AdvisoryStatus.BLOCKED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "vendor": self.vendor,
            "strategy_used": self.strategy_used.value if self.strategy_used else None,
            "record": self.record.to_dict() if self.record else None,
            "quality": {
                "score": self.quality.score,
                "issues": list(self.quality.issues),
                "is_acceptable": self.quality.is_acceptable,
            } if self.quality else None,
            "attempts": [a.describe() for a in self.attempts],
            "diagnostic": self.diagnostic,
            "finished_at": self.finished_at,
        }


# ----------------------------- Rows -----------------------------

REF_URL_SEPARATOR = "|"


def split_ref_urls(ref_urls: str) -> List[str]:
    """Split a pipe-delimited RefUrls cell, dropping blanks."""
    return [u.strip() for u in (ref_urls or "").split(REF_URL_SEPARATOR) if u.strip()]


@dataclass
class AdvisoryRow:
    """One input row as handed over by the CSV layer."""
    row_id: str
    ref_urls: str = ""

    @property
    def urls(self) -> List[str]:
        return split_ref_urls(self.ref_urls)


@dataclass
class RowResult:
    """Per-row output consumed by the CSV/UI layer."""
    row_id: str
    status: AdvisoryStatus
    download_links: str = ""
    summary: str = ""
    timestamp: str = field(default_factory=now_utc_iso)
    results: List[AdvisoryResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_id": self.row_id,
            "status": self.status.value,
            "download_links": self.download_links,
            "summary": self.summary,
            "timestamp": self.timestamp,
            "urls": [r.url for r in self.results],
        }


@dataclass
class BatchSummary:
    """Aggregated outcome of one batch run."""

    results: Dict[str, AdvisoryResult] = field(default_factory=dict)
    rows: List[RowResult] = field(default_factory=list)
    manual_review: List[str] = field(default_factory=list)
    pipeline_runs: int = 0
    started_at: str = field(default_factory=now_utc_iso)
    finished_at: str = ""
    timed_out: bool = False

    def count(self, status: AdvisoryStatus) -> int:
        return sum(1 for r in self.results.values() if r.status == status)

    @property
    def counts(self) -> Dict[str, int]:
        return {s.value: self.count(s) for s in AdvisoryStatus}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "timed_out": self.timed_out,
            "pipeline_runs": self.pipeline_runs,
            "counts": self.counts,
            "manual_review": list(self.manual_review),
            "results": {url: r.to_dict() for url, r in self.results.items()},
            "rows": [row.to_dict() for row in self.rows],
        }
