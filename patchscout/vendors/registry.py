"""
Vendor registry: maps a URL's host to a VendorProfile.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable, List, Optional, Tuple

from patchscout.models import FetchStrategy, host_of
from patchscout.vendors.profiles import BUILTIN_PROFILES, GENERIC, VendorProfile


def host_matches(host: str, pattern: str) -> bool:
    """
    Suffix match on a label boundary ("redhat.com" matches
    "access.redhat.com" but not "notredhat.com"). Patterns without a dot
    match as a substring of the host.
    """
    host = (host or "").lower()
    pattern = pattern.lower()
    if not host or not pattern:
        return False
    if "." not in pattern:
        return pattern in host
    return host == pattern or host.endswith("." + pattern)


def browser_first(profile: VendorProfile) -> VendorProfile:
    """Copy of a profile that renders before trying plain HTTP."""
    if FetchStrategy.BROWSER in profile.fetch_priority:
        return profile
    priority: List[FetchStrategy] = [s for s in profile.fetch_priority if s == FetchStrategy.API]
    priority.append(FetchStrategy.BROWSER)
    priority.extend(s for s in profile.fetch_priority if s != FetchStrategy.API)
    return dataclasses.replace(profile, fetch_priority=tuple(priority))


class VendorRegistry:
    """
    Ordered profile table; resolve() is pure and never raises.

    First matching profile in registration order wins; anything unmatched
    gets the generic profile. `browser_hosts` marks extra hosts whose pages
    are known to be client-rendered.
    """

    def __init__(
        self,
        profiles: Optional[Iterable[VendorProfile]] = None,
        fallback: VendorProfile = GENERIC,
        browser_hosts: Iterable[str] = (),
    ):
        self.profiles: Tuple[VendorProfile, ...] = tuple(BUILTIN_PROFILES if profiles is None else profiles)
        self.fallback = fallback
        self.browser_hosts = tuple(h.lower() for h in browser_hosts if h)

    def resolve(self, url: str) -> VendorProfile:
        return self.resolve_host(host_of(url))

    def resolve_host(self, host: str) -> VendorProfile:
        profile = self.fallback
        for candidate in self.profiles:
            if any(host_matches(host, p) for p in candidate.host_patterns):
                profile = candidate
                break
        if self.browser_hosts and any(host_matches(host, h) for h in self.browser_hosts):
            profile = browser_first(profile)
        return profile

    def get(self, name: str) -> Optional[VendorProfile]:
        if name == self.fallback.name:
            return self.fallback
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def names(self) -> List[str]:
        return [p.name for p in self.profiles] + [self.fallback.name]
