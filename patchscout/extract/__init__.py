"""
Extraction for PatchScout.

Provides:
- HTML text/link utilities (html)
- Shared extraction rules and the Extractor interface (base)
- Vendor implementations looked up by the profile's extractor name
- extract_advisory(): vendor pass merged with the generic link-scan pass
"""

from typing import Dict, Optional

from patchscout.extract.base import Content, Extractor
from patchscout.extract.generic import GenericExtractor, RuleExtractor
from patchscout.extract.github import GitHubExtractor
from patchscout.extract.html import strip_html
from patchscout.extract.microsoft import MicrosoftExtractor
from patchscout.models import AdvisoryRecord
from patchscout.vendors.profiles import VendorProfile

EXTRACTORS: Dict[str, Extractor] = {
    e.name: e for e in (GenericExtractor(), RuleExtractor(), MicrosoftExtractor(), GitHubExtractor())
}


def get_extractor(name: str, table: Optional[Dict[str, Extractor]] = None) -> Extractor:
    """Extractor registered under `name`; unknown names fall back to generic."""
    table = EXTRACTORS if table is None else table
    return table.get(name) or table.get("generic") or EXTRACTORS["generic"]


def extract_advisory(
    content: Content,
    url: str,
    profile: VendorProfile,
    table: Optional[Dict[str, Extractor]] = None,
) -> AdvisoryRecord:
    """
    Run the profile's extractor, then layer the generic link scan on top.

    The generic pass only applies to markup; API payloads are left to the
    vendor extractor. Extractor exceptions propagate to the caller.
    """
    extractor = get_extractor(profile.extractor, table)
    record = extractor.extract(content, url, profile)
    if extractor.name != "generic" and isinstance(content, (str, bytes)):
        generic = get_extractor("generic", table).extract(content, url, profile)
        record = record.merge(generic)
    return record


__all__ = [
    "Content",
    "Extractor",
    "EXTRACTORS",
    "GenericExtractor",
    "RuleExtractor",
    "MicrosoftExtractor",
    "GitHubExtractor",
    "get_extractor",
    "extract_advisory",
    "strip_html",
]
