"""
Fetcher layer for PatchScout.

Three interchangeable strategies behind one contract:
- HttpFetcher: direct HTTP with browser-like headers and per-host cookies
- BrowserFetcher: headless-browser rendering through an injected Renderer
- ApiFetcher: vendor data APIs (GitHub, MSRC)
"""

from patchscout.fetchers.base import Fetcher
from patchscout.fetchers.http import HttpFetcher
from patchscout.fetchers.browser import BrowserConfig, BrowserFetcher, PlaywrightRenderer, RenderedPage, Renderer
from patchscout.fetchers.api import ApiFetcher, GitHubApiClient, MsrcApiClient, VendorApiClient

__all__ = [
    "Fetcher",
    "HttpFetcher",
    "BrowserConfig",
    "BrowserFetcher",
    "PlaywrightRenderer",
    "RenderedPage",
    "Renderer",
    "ApiFetcher",
    "GitHubApiClient",
    "MsrcApiClient",
    "VendorApiClient",
]
