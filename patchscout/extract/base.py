"""
Extractor interface and the rule helpers every extractor shares.
"""

from __future__ import annotations

import re
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple, Union

from patchscout.models import AdvisoryRecord, host_of
from patchscout.vendors.profiles import GENERIC_DOWNLOAD_EXTENSIONS, ExtractionRules, VendorProfile
from patchscout.vendors.registry import host_matches

Content = Union[str, bytes, dict, list, None]

_VERSION = r"\d+(?:\.\d+)+(?:[a-z]\d*)?(?:[-_.][A-Za-z0-9]+)*"

FIXED_VERSION_PATTERNS = [
    re.compile(rf"(?:fixed|patched|resolved|addressed|corrected) in (?:version |release |v)?({_VERSION})", re.IGNORECASE),
    re.compile(rf"(?:upgrade|update) to (?:version |release |v)?({_VERSION})(?: or later)?", re.IGNORECASE),
    re.compile(rf"(?:version|release|v)\s*({_VERSION})\s+(?:fixes|addresses|contains a (?:fix|patch))", re.IGNORECASE),
    re.compile(rf"fixed versions?:?\s*({_VERSION})", re.IGNORECASE),
]

AFFECTED_VERSION_PATTERNS = [
    (re.compile(rf"versions?:?\s+({_VERSION})\s+(?:through|to)\s+({_VERSION})", re.IGNORECASE), "{0} through {1}"),
    (re.compile(rf"(?:all\s+)?versions?\s+(?:before|prior to|up to|earlier than|below)\s+({_VERSION})", re.IGNORECASE), "before {0}"),
    (re.compile(rf"affected versions?:?\s*((?:[<>]=?|=)?\s*{_VERSION}(?:\s*(?:,|and|-|to|through)\s*(?:[<>]=?)?\s*{_VERSION})*)", re.IGNORECASE), "{0}"),
    (re.compile(rf"(<=?\s*{_VERSION})"), "{0}"),
]


def content_text(content: Content) -> str:
    if content is None:
        return ""
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    if isinstance(content, str):
        return content
    return ""


def clean_version(v: str) -> str:
    return v.strip().rstrip(".-_,")


def find_fix_version(text: str) -> str:
    for pattern in FIXED_VERSION_PATTERNS:
        m = pattern.search(text or "")
        if m:
            return clean_version(m.group(1))
    return ""


def find_affected_versions(text: str, limit: int = 3) -> str:
    found: List[str] = []
    for pattern, fmt in AFFECTED_VERSION_PATTERNS:
        for m in pattern.finditer(text or ""):
            value = fmt.format(*(clean_version(g) for g in m.groups()))
            value = re.sub(r"\s+", " ", value)
            if value not in found:
                found.append(value)
            if len(found) >= limit:
                return "; ".join(found)
    return "; ".join(found)


def find_patch_ids(texts: Iterable[str], rules: ExtractionRules) -> List[Tuple[str, str]]:
    """(formatted_id, raw) pairs in order of first appearance."""
    if rules.patch_id_pattern is None:
        return []
    found: List[Tuple[str, str]] = []
    seen = set()
    for text in texts:
        for m in rules.patch_id_pattern.finditer(text or ""):
            patch_id = rules.format_id(m)
            if patch_id in seen:
                continue
            seen.add(patch_id)
            found.append((patch_id, m.group(1) if m.groups() else m.group(0)))
    return found


def add_patch_ids(record: AdvisoryRecord, ids: List[Tuple[str, str]], rules: ExtractionRules) -> None:
    """Record identifiers and synthesize their catalog/download URLs (unverified)."""
    for patch_id, raw in ids:
        record.add_patch_id(patch_id)
        url = rules.synthesize_url(patch_id, raw)
        if url:
            record.add_link(url, synthesized=True)


def is_download_link(url: str, rules: ExtractionRules, extensions: Tuple[str, ...] = GENERIC_DOWNLOAD_EXTENSIONS) -> bool:
    host = host_of(url)
    if not host:
        return False
    if any(host_matches(host, h) for h in rules.download_hosts):
        return True
    path = urllib.parse.urlsplit(url).path.lower()
    if any(hint in path for hint in rules.download_path_hints):
        return True
    return path.endswith(extensions)


def harvest_links(links: Iterable[Tuple[str, str]], rules: ExtractionRules, page_url: str = "") -> List[str]:
    """Keep links that look like downloads under the given rules (never the page itself)."""
    page = (page_url or "").split("#", 1)[0]
    return [url for url, _text in links if url.split("#", 1)[0] != page and is_download_link(url, rules)]


class Extractor(ABC):
    """
    Turns fetched content into an AdvisoryRecord for one vendor.

    `content` is the page markup (str/bytes) or, for vendor APIs, the decoded
    JSON payload.
    """

    name: str = "base"

    @abstractmethod
    def extract(self, content: Content, url: str, profile: VendorProfile) -> AdvisoryRecord:
        raise NotImplementedError

    def new_record(self, profile: VendorProfile) -> AdvisoryRecord:
        return AdvisoryRecord(vendor_used=profile.name)


def first_text(*values: Optional[Any]) -> str:
    for v in values:
        if isinstance(v, str) and v.strip():
            return re.sub(r"\s+", " ", v).strip()
    return ""
