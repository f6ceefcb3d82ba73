"""
Error taxonomy for PatchScout.

Only input-level problems are raised. Per-URL fetch and extraction problems
travel as data (FetchAttemptResult.outcome / AdvisoryResult.status); the
classes below name those conditions so diagnostics and callers share one
vocabulary.
"""

from __future__ import annotations


class PatchScoutError(Exception):
    """Base class for PatchScout errors."""


class TransientNetworkError(PatchScoutError):
    """Connection failure, timeout, 5xx or 429: retried by the executor."""


class AntiBotBlocked(PatchScoutError):
    """HTTP 403 from anti-automation defenses. Never retried."""


class CapabilityUnavailable(PatchScoutError):
    """An optional dependency (browser, vendor API client) is missing."""


class ExtractionEmpty(PatchScoutError):
    """The fetch succeeded but no recognizable remediation fields were found."""


class FatalInputError(PatchScoutError, ValueError):
    """A single URL or row is unusable (malformed URL, wrong type)."""


class BatchInputError(PatchScoutError):
    """The batch input as a whole cannot be read."""
