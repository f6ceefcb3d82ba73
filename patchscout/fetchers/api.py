"""
Vendor API fetcher.

Calls a vendor's official structured endpoint instead of scraping HTML:
- GitHub REST API: repository description, releases and their assets,
  security advisories (GHSA)
- MSRC CVRF API: security update lookup by CVE id, then the CVRF document
  for that update

Each client folds its calls into one JSON payload which the vendor's
extractor understands.
"""

from __future__ import annotations

import json
import logging
import re
import time
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from patchscout.fetchers.base import Fetcher, report_unavailable
from patchscout.fetchers.http import HttpFetcher
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy, host_of
from patchscout.sessions import DomainSession

logger = logging.getLogger(__name__)

CVE_PATTERN = re.compile(r"CVE-\d{4}-\d{4,}", re.IGNORECASE)
GHSA_PATTERN = re.compile(r"GHSA(?:-[23456789cfghjmpqrvwx]{4}){3}", re.IGNORECASE)


def _value(node: Any) -> str:
    """CVRF text nodes are {"Value": "..."} objects."""
    if isinstance(node, dict):
        return str(node.get("Value") or "")
    return node if isinstance(node, str) else ""


class VendorApiClient(ABC):
    """One vendor's data API."""

    name: str = "base"

    @abstractmethod
    def handles(self, url: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def lookup(self, url: str, http: HttpFetcher) -> FetchAttemptResult:
        """Return a successful result carrying json_data, or a failed one."""
        raise NotImplementedError

    def payload_result(self, url: str, payload: Dict[str, Any], status: int = 200) -> FetchAttemptResult:
        return FetchAttemptResult(
            url=url,
            strategy=FetchStrategy.API,
            outcome=FetchOutcome.SUCCESS,
            status_code=status,
            content=json.dumps(payload).encode("utf-8"),
            content_type="application/json",
            json_data=payload,
        )

    @staticmethod
    def api_failure(url: str, result: FetchAttemptResult, what: str) -> FetchAttemptResult:
        """
        Re-label a failed API call for the pipeline.

        A 403 from an API means quota or auth, not an anti-bot verdict on the
        advisory page, so it must not end the URL as Blocked.
        """
        outcome, kind = result.outcome, result.error_kind
        if outcome == FetchOutcome.BLOCKED:
            outcome, kind = FetchOutcome.FAILED, ErrorKind.CLIENT_ERROR
        elif outcome == FetchOutcome.SUCCESS:
            outcome, kind = FetchOutcome.FAILED, ErrorKind.CONTENT
        return FetchAttemptResult(
            url=url,
            strategy=FetchStrategy.API,
            outcome=outcome,
            status_code=result.status_code,
            error=f"{what}: {result.error or 'unexpected payload'}",
            error_kind=kind,
            retry_after_ms=result.retry_after_ms,
        )


# ----------------------------- GitHub -----------------------------

class GitHubApiClient(VendorApiClient):
    """GitHub REST API (api.github.com)."""

    name = "github"

    _RESERVED_OWNERS = {"advisories", "orgs", "topics", "marketplace", "settings", "features", "security"}

    def __init__(self, token: Optional[str] = None, api_url: str = "https://api.github.com", max_releases: int = 5):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.max_releases = max_releases

    def handles(self, url: str) -> bool:
        host = host_of(url)
        return host == "github.com" or host.endswith(".github.com")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @classmethod
    def parse_url(cls, url: str) -> Dict[str, str]:
        """Pull owner / repo / release tag / GHSA id out of a github.com URL."""
        path = urllib.parse.urlsplit(url).path
        parts = [urllib.parse.unquote(p) for p in path.split("/") if p]
        info: Dict[str, str] = {}
        ghsa = GHSA_PATTERN.search(url)
        if ghsa:
            info["ghsa"] = ghsa.group(0)
        if len(parts) >= 2 and parts[0].lower() not in cls._RESERVED_OWNERS:
            info["owner"] = parts[0]
            info["repo"] = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
            if len(parts) >= 5 and parts[2] == "releases" and parts[3] == "tag":
                info["tag"] = "/".join(parts[4:])
        return info

    async def lookup(self, url, http):
        info = self.parse_url(url)
        if "owner" not in info and "ghsa" not in info:
            return FetchAttemptResult(
                url=url,
                strategy=FetchStrategy.API,
                error="Not a repository or advisory URL",
                error_kind=ErrorKind.INVALID_INPUT,
            )

        payload: Dict[str, Any] = {"source": "github"}
        headers = self._headers()

        if "owner" in info:
            repo_path = f"/repos/{info['owner']}/{info['repo']}"
            repo = await http.fetch_json(self.api_url + repo_path, headers=headers)
            if not repo.success or not isinstance(repo.json_data, dict):
                return self.api_failure(url, repo, "GitHub repository lookup failed")
            payload["repository"] = repo.json_data

            if "tag" in info:
                tag = urllib.parse.quote(info["tag"], safe="")
                rel = await http.fetch_json(f"{self.api_url}{repo_path}/releases/tags/{tag}", headers=headers)
                releases = [rel.json_data] if rel.success and isinstance(rel.json_data, dict) else []
            else:
                rel = await http.fetch_json(
                    f"{self.api_url}{repo_path}/releases?per_page={self.max_releases}",
                    headers=headers,
                )
                releases = rel.json_data if rel.success and isinstance(rel.json_data, list) else []
            payload["releases"] = releases[: self.max_releases]

        if "ghsa" in info:
            adv = await http.fetch_json(f"{self.api_url}/advisories/{info['ghsa']}", headers=headers)
            if adv.success and isinstance(adv.json_data, dict):
                payload["advisory"] = adv.json_data
            elif "repository" not in payload:
                return self.api_failure(url, adv, "GitHub advisory lookup failed")

        return self.payload_result(url, payload)


# ----------------------------- MSRC -----------------------------

class MsrcApiClient(VendorApiClient):
    """Microsoft Security Response Center CVRF API."""

    name = "msrc"

    def __init__(self, api_url: str = "https://api.msrc.microsoft.com/cvrf/v3.0"):
        self.api_url = api_url.rstrip("/")

    def handles(self, url: str) -> bool:
        return host_of(url).endswith("msrc.microsoft.com") and bool(CVE_PATTERN.search(url))

    async def lookup(self, url, http):
        match = CVE_PATTERN.search(url)
        if not match:
            return FetchAttemptResult(
                url=url,
                strategy=FetchStrategy.API,
                error="No CVE identifier in URL",
                error_kind=ErrorKind.INVALID_INPUT,
            )
        cve = match.group(0).upper()

        updates = await http.fetch_json(f"{self.api_url}/updates('{cve}')")
        values = (updates.json_data or {}).get("value") if isinstance(updates.json_data, dict) else None
        first = values[0] if isinstance(values, list) and values else None
        update_id = str(first.get("ID") or "") if isinstance(first, dict) else ""
        if not updates.success or not update_id:
            return self.api_failure(url, updates, f"MSRC update lookup for {cve} failed")

        doc = await http.fetch_json(f"{self.api_url}/cvrf/{update_id}")
        if not doc.success or not isinstance(doc.json_data, dict):
            return self.api_failure(url, doc, f"MSRC document {update_id} fetch failed")

        vulnerability = self._find_vulnerability(doc.json_data, cve)
        if vulnerability is None:
            return self.api_failure(url, doc, f"{cve} not present in MSRC document {update_id}")

        payload = {
            "source": "msrc",
            "cve": cve,
            "update_id": update_id,
            "document_title": _value(doc.json_data.get("DocumentTitle")),
            "vulnerability": vulnerability,
            "products": self._product_names(doc.json_data, vulnerability),
        }
        return self.payload_result(url, payload)

    @staticmethod
    def _find_vulnerability(document: Dict[str, Any], cve: str) -> Optional[Dict[str, Any]]:
        vulns = document.get("Vulnerability")
        for vuln in vulns if isinstance(vulns, list) else []:
            if isinstance(vuln, dict) and str(vuln.get("CVE", "")).upper() == cve:
                return vuln
        return None

    @staticmethod
    def _product_names(document: Dict[str, Any], vulnerability: Dict[str, Any]) -> Dict[str, str]:
        wanted = set()
        statuses = vulnerability.get("ProductStatuses")
        for status in statuses if isinstance(statuses, list) else []:
            if isinstance(status, dict) and isinstance(status.get("ProductID"), list):
                wanted.update(p for p in status["ProductID"] if isinstance(p, str))
        names: Dict[str, str] = {}
        tree = document.get("ProductTree")
        products = tree.get("FullProductName") if isinstance(tree, dict) else None
        for product in products if isinstance(products, list) else []:
            if not isinstance(product, dict):
                continue
            pid = product.get("ProductID")
            if isinstance(pid, str) and pid in wanted:
                names[pid] = product.get("Value", "")
        return names


# ----------------------------- Fetcher -----------------------------

class ApiFetcher(Fetcher):
    """Dispatches to the first configured VendorApiClient that handles the URL."""

    strategy = FetchStrategy.API

    def __init__(self, http: HttpFetcher, clients: Optional[List[VendorApiClient]] = None):
        self.http = http
        self.clients = list(clients or [])

    @property
    def is_available(self) -> bool:
        return bool(self.clients)

    def client_for(self, url: str) -> Optional[VendorApiClient]:
        for client in self.clients:
            if client.handles(url):
                return client
        return None

    async def fetch(
        self,
        url: str,
        session: Optional[DomainSession] = None,
        attempt: int = 1,
    ) -> FetchAttemptResult:
        client = self.client_for(url)
        if client is None:
            report_unavailable("Vendor API", f"no API client configured (first seen for {host_of(url)})")
            return self.unavailable(url, "No vendor API client for this URL")

        start_time = time.time()
        result = await client.lookup(url, self.http)
        result.strategy = FetchStrategy.API
        result.duration_ms = (time.time() - start_time) * 1000
        logger.debug("%s API lookup for %s: %s", client.name, url, result.outcome.value)
        return result

    async def close(self) -> None:
        """Close the HTTP client the vendor APIs share."""
        await self.http.close()
