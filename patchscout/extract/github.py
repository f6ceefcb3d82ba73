"""
GitHub extractor for API payloads (repository, releases, advisory) and for
plain github.com pages.
"""

from __future__ import annotations

from typing import Any, Dict, List

from patchscout.extract.base import (
    Content,
    Extractor,
    add_patch_ids,
    content_text,
    find_affected_versions,
    find_fix_version,
    first_text,
    harvest_links,
)
from patchscout.extract.generic import extract_page
from patchscout.extract.html import find_remediation_in_text
from patchscout.models import AdvisoryRecord
from patchscout.vendors.profiles import VendorProfile


def _patched_version(vuln: Dict[str, Any]) -> str:
    patched = vuln.get("first_patched_version") or vuln.get("patched_versions")
    if isinstance(patched, dict):
        patched = patched.get("identifier")
    return str(patched or "").strip()


class GitHubExtractor(Extractor):
    name = "github"

    def extract(self, content: Content, url: str, profile: VendorProfile) -> AdvisoryRecord:
        if isinstance(content, dict):
            return self._from_api(content, url, profile)

        record = self.new_record(profile)
        html = content_text(content)
        if html:
            extract_page(html, url, profile.rules, record)
        return record

    def _from_api(self, payload: Dict[str, Any], url: str, profile: VendorProfile) -> AdvisoryRecord:
        record = self.new_record(profile)
        rules = profile.rules
        repo = payload.get("repository") or {}
        advisory = payload.get("advisory") or {}
        releases: List[Dict[str, Any]] = [r for r in payload.get("releases") or [] if isinstance(r, dict)]

        record.title = first_text(advisory.get("summary"), repo.get("full_name"))

        # Advisory facts come first: they describe this CVE specifically.
        if advisory:
            ghsa = advisory.get("ghsa_id") or ""
            if ghsa:
                add_patch_ids(record, [(ghsa, ghsa)], rules)
            ranges: List[str] = []
            for vuln in advisory.get("vulnerabilities") or []:
                if not isinstance(vuln, dict):
                    continue
                package = (vuln.get("package") or {}).get("name") or ""
                vrange = (vuln.get("vulnerable_version_range") or "").strip()
                if vrange:
                    ranges.append(f"{package} {vrange}".strip())
                if not record.fix_version:
                    record.fix_version = _patched_version(vuln)
            record.affected_versions = "; ".join(ranges)
            references = [(ref, "") for ref in advisory.get("references") or [] if isinstance(ref, str)]
            record.extend_links(harvest_links(references, rules, url))
            description = advisory.get("description") or ""
            record.remediation_text = find_remediation_in_text(description, rules.remediation_keywords)
            if not record.fix_version:
                record.fix_version = find_fix_version(description)
            if not record.affected_versions:
                record.affected_versions = find_affected_versions(description)

        for release in releases:
            for asset in release.get("assets") or []:
                if isinstance(asset, dict) and asset.get("browser_download_url"):
                    record.add_link(asset["browser_download_url"])
            if release.get("html_url"):
                record.add_link(release["html_url"])

        tag_url = "/releases/tag/" in url
        if tag_url and releases and not record.fix_version:
            record.fix_version = (releases[0].get("tag_name") or "").strip()

        if not record.remediation_text:
            record.remediation_text = first_text(repo.get("description"), advisory.get("summary"))

        return record
