"""
Deterministic quality scoring for extracted advisory records.

Scores are fixed additive weights on a 0–100 scale. They are advisory only:
a low score is reported next to the record, it never discards it.
"""

from __future__ import annotations

from typing import List, Tuple

from patchscout.models import AdvisoryRecord, QualityScore

DEFAULT_THRESHOLD = 40.0

# Remediation text shorter than this is noise ("Patch", "See below").
MIN_REMEDIATION_LEN = 20

WEIGHTS: Tuple[Tuple[str, float], ...] = (
    ("patch_id", 30.0),
    ("fix_version", 20.0),
    ("download_link", 20.0),
    ("affected_versions", 15.0),
    ("remediation_text", 15.0),
)


def _present(record: AdvisoryRecord, field_name: str) -> bool:
    if field_name == "patch_id":
        return bool(record.patch_ids)
    if field_name == "download_link":
        return bool(record.download_links)
    if field_name == "remediation_text":
        return len((record.remediation_text or "").strip()) >= MIN_REMEDIATION_LEN
    return bool((getattr(record, field_name) or "").strip())


_ISSUES = {
    "patch_id": "No patch identifier found",
    "fix_version": "No fixed version found",
    "download_link": "No download link found",
    "affected_versions": "No affected versions found",
    "remediation_text": "No usable remediation text",
}


class QualityScorer:
    """Grades an AdvisoryRecord; `is_acceptable` when score >= threshold."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = float(threshold)

    def score(self, record: AdvisoryRecord) -> QualityScore:
        total = 0.0
        issues: List[str] = []
        for field_name, weight in WEIGHTS:
            if _present(record, field_name):
                total += weight
            else:
                issues.append(_ISSUES[field_name])
        total = max(0.0, min(100.0, total))
        return QualityScore(score=total, issues=issues, is_acceptable=total >= self.threshold)


def score_record(record: AdvisoryRecord, threshold: float = DEFAULT_THRESHOLD) -> QualityScore:
    return QualityScorer(threshold).score(record)
