"""
Vendor profiles and host lookup.
"""

from patchscout.vendors.profiles import (
    BUILTIN_PROFILES,
    GENERIC,
    GITHUB,
    MICROSOFT,
    ExtractionRules,
    VendorProfile,
)
from patchscout.vendors.registry import VendorRegistry, host_matches

__all__ = [
    "BUILTIN_PROFILES",
    "GENERIC",
    "GITHUB",
    "MICROSOFT",
    "ExtractionRules",
    "VendorProfile",
    "VendorRegistry",
    "host_matches",
]
