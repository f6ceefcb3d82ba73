"""
PatchScout: vendor remediation data for CVE reference URLs.

Resolves each advisory URL to a vendor profile, fetches it through the
vendor's data API, a headless browser or plain HTTP, and extracts patch ids,
fixed versions and download links into a scored AdvisoryRecord.
"""

__version__ = "1.0.0"

from patchscout.models import AdvisoryRecord, AdvisoryResult, AdvisoryRow, AdvisoryStatus, BatchSummary, Confidence
from patchscout.orchestrator import BatchCoordinator, ProgressEvent, process_batch, process_rows, run_batch

__all__ = [
    "AdvisoryRecord",
    "AdvisoryResult",
    "AdvisoryRow",
    "AdvisoryStatus",
    "BatchSummary",
    "Confidence",
    "BatchCoordinator",
    "ProgressEvent",
    "process_batch",
    "process_rows",
    "run_batch",
]
