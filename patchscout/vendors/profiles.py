"""
Built-in vendor profiles.

A profile says which hosts belong to a vendor, in which order to try the
fetch strategies, and which rules the extractor applies:
- patch_id_pattern / id_format: how a patch identifier looks on the page
- url_template: identifier -> download/catalog URL, used to synthesize links
  from bare identifiers ({id} is the formatted id, {raw} the captured core)
- download_hosts / download_path_hints: which hyperlinks count as downloads
- remediation_keywords: headings/paragraph cues for the remediation text
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Pattern, Tuple

from patchscout.models import FetchStrategy


DEFAULT_REMEDIATION_KEYWORDS: Tuple[str, ...] = (
    "remediation",
    "solution",
    "workaround",
    "mitigation",
    "fixed in",
    "upgrade to",
    "update to",
    "security update",
    "patch",
    "resolution",
)

GENERIC_DOWNLOAD_PATH_HINTS: Tuple[str, ...] = (
    "/download",
    "/downloads/",
    "/releases/",
    "/patches/",
    "/errata/",
    "/security-updates/",
    "/hotfix",
)

GENERIC_DOWNLOAD_EXTENSIONS: Tuple[str, ...] = (
    ".msu", ".msi", ".exe", ".zip", ".tar.gz", ".tgz", ".rpm", ".deb", ".pkg", ".dmg", ".jar", ".patch",
)


@dataclass(frozen=True)
class ExtractionRules:
    patch_id_pattern: Optional[Pattern[str]] = None
    id_format: str = "{0}"
    url_template: Optional[str] = None
    download_hosts: Tuple[str, ...] = ()
    download_path_hints: Tuple[str, ...] = GENERIC_DOWNLOAD_PATH_HINTS
    remediation_keywords: Tuple[str, ...] = DEFAULT_REMEDIATION_KEYWORDS

    def format_id(self, match: "re.Match[str]") -> str:
        raw = match.group(1) if match.groups() else match.group(0)
        return self.id_format.format(raw)

    def synthesize_url(self, patch_id: str, raw: str) -> Optional[str]:
        if not self.url_template:
            return None
        return self.url_template.format(id=patch_id, raw=raw)


@dataclass(frozen=True)
class VendorProfile:
    name: str
    host_patterns: FrozenSet[str]
    fetch_priority: Tuple[FetchStrategy, ...] = (FetchStrategy.HTTP,)
    rules: ExtractionRules = field(default_factory=ExtractionRules)
    extractor: str = "generic"
    api: Optional[str] = None


MICROSOFT = VendorProfile(
    name="microsoft",
    host_patterns=frozenset({
        "msrc.microsoft.com",
        "support.microsoft.com",
        "catalog.update.microsoft.com",
        "technet.microsoft.com",
    }),
    # MSRC's Security Update Guide is a client-rendered SPA.
    fetch_priority=(FetchStrategy.API, FetchStrategy.BROWSER, FetchStrategy.HTTP),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bKB\s?-?(\d{6,7})\b", re.IGNORECASE),
        id_format="KB{0}",
        url_template="https://www.catalog.update.microsoft.com/Search.aspx?q=KB{raw}",
        download_hosts=("catalog.update.microsoft.com", "download.microsoft.com", "download.windowsupdate.com"),
    ),
    extractor="microsoft",
    api="msrc",
)

GITHUB = VendorProfile(
    name="github",
    host_patterns=frozenset({"github.com"}),
    fetch_priority=(FetchStrategy.API, FetchStrategy.HTTP),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bGHSA(?:-[23456789cfghjmpqrvwx]{4}){3}\b", re.IGNORECASE),
        id_format="{0}",
        url_template="https://github.com/advisories/{id}",
        download_hosts=("objects.githubusercontent.com", "codeload.github.com"),
        download_path_hints=("/releases/download/", "/releases/tag/", "/archive/", "/commit/", "/pull/"),
    ),
    extractor="github",
    api="github",
)

REDHAT = VendorProfile(
    name="redhat",
    host_patterns=frozenset({"access.redhat.com", "bugzilla.redhat.com", "redhat.com"}),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bRH[SBE]A-\d{4}:\d{4,5}\b"),
        url_template="https://access.redhat.com/errata/{id}",
        download_hosts=("access.redhat.com",),
    ),
    extractor="rules",
)

CISCO = VendorProfile(
    name="cisco",
    host_patterns=frozenset({"sec.cloudapps.cisco.com", "tools.cisco.com", "cisco.com"}),
    fetch_priority=(FetchStrategy.BROWSER, FetchStrategy.HTTP),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bcisco-sa-[A-Za-z0-9][A-Za-z0-9-]{3,}\b"),
        url_template="https://sec.cloudapps.cisco.com/security/center/content/CiscoSecurityAdvisory/{id}",
        download_hosts=("software.cisco.com",),
    ),
    extractor="rules",
)

UBUNTU = VendorProfile(
    name="ubuntu",
    host_patterns=frozenset({"ubuntu.com", "launchpad.net"}),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bUSN-\d{3,5}-\d{1,2}\b"),
        url_template="https://ubuntu.com/security/notices/{id}",
        download_hosts=("launchpad.net",),
    ),
    extractor="rules",
)

DEBIAN = VendorProfile(
    name="debian",
    host_patterns=frozenset({"debian.org"}),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\b(?:DSA|DLA)-\d{3,5}(?:-\d{1,2})?\b"),
        url_template="https://security-tracker.debian.org/tracker/{id}",
        download_hosts=("security.debian.org", "deb.debian.org"),
    ),
    extractor="rules",
)

ORACLE = VendorProfile(
    name="oracle",
    host_patterns=frozenset({"oracle.com"}),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bPatch\s+(\d{8,9})\b", re.IGNORECASE),
        id_format="Patch {0}",
        url_template="https://support.oracle.com/epmos/faces/PatchSearchResults?searchPatchId={raw}",
        download_hosts=("updates.oracle.com", "support.oracle.com"),
    ),
    extractor="rules",
)

VMWARE = VendorProfile(
    name="vmware",
    host_patterns=frozenset({"vmware.com", "support.broadcom.com"}),
    fetch_priority=(FetchStrategy.BROWSER, FetchStrategy.HTTP),
    rules=ExtractionRules(
        patch_id_pattern=re.compile(r"\bVMSA-\d{4}-\d{4}(?:\.\d+)?\b"),
        url_template="https://www.vmware.com/security/advisories/{id}.html",
        download_hosts=("customerconnect.vmware.com", "support.broadcom.com"),
    ),
    extractor="rules",
)

GENERIC = VendorProfile(
    name="generic",
    host_patterns=frozenset(),
    extractor="generic",
)

BUILTIN_PROFILES: Tuple[VendorProfile, ...] = (
    MICROSOFT,
    GITHUB,
    REDHAT,
    CISCO,
    UBUNTU,
    DEBIAN,
    ORACLE,
    VMWARE,
)
