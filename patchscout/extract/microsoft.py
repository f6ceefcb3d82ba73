"""
Microsoft extractor.

Handles both MSRC CVRF payloads from the vendor API and HTML from MSRC /
support.microsoft.com. The Security Update Guide is a client-rendered app;
fetched without a browser it is a small skeleton whose only useful content is
identifiers embedded in markup and inline data, so the raw markup is scanned
for KB numbers too. Every KB number yields an Update Catalog search URL.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List

from patchscout.extract.base import Content, Extractor, add_patch_ids, content_text, find_patch_ids, first_text
from patchscout.extract.generic import extract_page
from patchscout.extract.html import find_remediation_in_text, strip_html
from patchscout.models import AdvisoryRecord
from patchscout.vendors.profiles import VendorProfile

# CVRF remediation types
_WORKAROUND = 0
_MITIGATION = 1
_VENDOR_FIX = 2

_MAX_PRODUCTS = 5


def _value(obj: Any) -> str:
    if isinstance(obj, dict):
        return str(obj.get("Value") or "")
    return str(obj or "")


class MicrosoftExtractor(Extractor):
    name = "microsoft"

    def extract(self, content: Content, url: str, profile: VendorProfile) -> AdvisoryRecord:
        if isinstance(content, dict):
            return self._from_cvrf(content, profile)

        record = self.new_record(profile)
        html = content_text(content)
        if not html:
            return record
        extract_page(html, url, profile.rules, record)
        add_patch_ids(record, find_patch_ids([html], profile.rules), profile.rules)
        return record

    def _from_cvrf(self, payload: Dict[str, Any], profile: VendorProfile) -> AdvisoryRecord:
        record = self.new_record(profile)
        vuln = payload.get("vulnerability") or {}
        rules = profile.rules

        record.title = first_text(_value(vuln.get("Title")), payload.get("document_title"))

        workarounds: List[str] = []
        subtypes: List[str] = []
        for rem in vuln.get("Remediations") or []:
            if not isinstance(rem, dict):
                continue
            description = _value(rem.get("Description")).strip()
            rem_type = rem.get("Type")

            if rem_type == _VENDOR_FIX:
                kb = re.sub(r"\D", "", description)
                if 6 <= len(kb) <= 7:
                    add_patch_ids(record, [(f"KB{kb}", kb)], rules)
                link = (rem.get("URL") or "").strip()
                if link.startswith(("http://", "https://")):
                    record.add_link(link)
                if not record.fix_version and rem.get("FixedBuild"):
                    record.fix_version = str(rem["FixedBuild"]).strip()
                subtype = (rem.get("SubType") or "").strip()
                if subtype and subtype not in subtypes:
                    subtypes.append(subtype)
            elif rem_type in (_WORKAROUND, _MITIGATION) and description:
                workarounds.append(strip_html(description))

        products = [name for name in (payload.get("products") or {}).values() if name]
        if products:
            shown = ", ".join(products[:_MAX_PRODUCTS])
            more = len(products) - _MAX_PRODUCTS
            record.affected_versions = shown + (f" and {more} more" if more > 0 else "")

        if workarounds:
            record.remediation_text = workarounds[0]
        elif record.patch_ids:
            kind = " / ".join(subtypes) if subtypes else "Security Update"
            record.remediation_text = f"Install {kind}: " + ", ".join(record.patch_ids[:10])
        else:
            notes = " ".join(strip_html(_value(n)) for n in vuln.get("Notes") or [])
            record.remediation_text = find_remediation_in_text(notes, rules.remediation_keywords)

        return record
