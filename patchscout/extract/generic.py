"""
Rule-driven extractors.

RuleExtractor applies a vendor profile's ExtractionRules to an HTML page.
GenericExtractor is the catch-all link-scan pass: it ignores vendor rules and
keeps anything that looks like a download, and is layered on top of every
vendor-specific pass.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from patchscout.extract.base import (
    Content,
    Extractor,
    add_patch_ids,
    content_text,
    find_affected_versions,
    find_fix_version,
    find_patch_ids,
    harvest_links,
)
from patchscout.extract.html import (
    extract_links,
    extract_meta_text,
    extract_page_title,
    find_remediation_text,
    make_soup,
    text_fragments,
)
from patchscout.models import AdvisoryRecord
from patchscout.vendors.profiles import ExtractionRules, VendorProfile

GENERIC_RULES = ExtractionRules()


def extract_page(html: str, url: str, rules: ExtractionRules, record: AdvisoryRecord) -> BeautifulSoup:
    """Fill `record` from one HTML page under `rules`; returns the parsed soup."""
    soup = make_soup(html)
    text = " ".join(text_fragments(soup))
    links = extract_links(soup, url)

    if not record.title:
        record.title = extract_page_title(soup)

    ids = find_patch_ids([text] + extract_meta_text(soup) + [u for u, _ in links], rules)
    add_patch_ids(record, ids, rules)
    record.extend_links(harvest_links(links, rules, url))

    if not record.fix_version:
        record.fix_version = find_fix_version(text)
    if not record.affected_versions:
        record.affected_versions = find_affected_versions(text)
    if not record.remediation_text:
        record.remediation_text = find_remediation_text(soup, rules.remediation_keywords)
    return soup


class RuleExtractor(Extractor):
    """Applies the profile's own patch-id, link and remediation rules."""

    name = "rules"

    def extract(self, content: Content, url: str, profile: VendorProfile) -> AdvisoryRecord:
        record = self.new_record(profile)
        html = content_text(content)
        if html:
            extract_page(html, url, profile.rules, record)
        return record


class GenericExtractor(Extractor):
    """Vendor-agnostic link scan plus version/remediation heuristics."""

    name = "generic"

    def extract(self, content: Content, url: str, profile: VendorProfile) -> AdvisoryRecord:
        record = self.new_record(profile)
        html = content_text(content)
        if html:
            extract_page(html, url, GENERIC_RULES, record)
        return record
