"""
Tests for the vendor API clients and ApiFetcher dispatch.
"""

import logging

import pytest

from patchscout.context import build_context
from patchscout.fetchers.api import ApiFetcher, GitHubApiClient, MsrcApiClient
from patchscout.models import ErrorKind, FetchAttemptResult, FetchOutcome, FetchStrategy

GH = "https://api.github.com"
MSRC = "https://api.msrc.microsoft.com/cvrf/v3.0"


class FakeHttp:
    """Stands in for HttpFetcher.fetch_json with canned responses keyed by URL."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.closed = False

    async def fetch_json(self, url, headers=None, session=None):
        self.calls.append((url, headers or {}))
        payload = self.responses.get(url)
        if isinstance(payload, FetchAttemptResult):
            return payload
        if payload is None:
            return FetchAttemptResult(
                url=url, strategy=FetchStrategy.API, status_code=404,
                error="HTTP 404", error_kind=ErrorKind.CLIENT_ERROR,
            )
        return FetchAttemptResult(
            url=url, strategy=FetchStrategy.API, outcome=FetchOutcome.SUCCESS,
            status_code=200, json_data=payload,
        )

    async def close(self):
        self.closed = True


REPO = {"full_name": "acme/widget", "description": "Widget library"}
RELEASE = {
    "tag_name": "v2.4.1",
    "html_url": "https://github.com/acme/widget/releases/tag/v2.4.1",
    "assets": [{"browser_download_url": "https://github.com/acme/widget/releases/download/v2.4.1/widget-2.4.1.tar.gz"}],
}
ADVISORY = {"ghsa_id": "GHSA-c3f4-9h2j-mpqr", "summary": "Path traversal", "vulnerabilities": []}


class TestGitHubParseUrl:
    """Test URL decomposition."""

    @pytest.mark.parametrize("url,expected", [
        ("https://github.com/acme/widget", {"owner": "acme", "repo": "widget"}),
        ("https://github.com/acme/widget.git", {"owner": "acme", "repo": "widget"}),
        (
            "https://github.com/acme/widget/releases/tag/v2.4.1",
            {"owner": "acme", "repo": "widget", "tag": "v2.4.1"},
        ),
        (
            "https://github.com/acme/widget/security/advisories/GHSA-c3f4-9h2j-mpqr",
            {"owner": "acme", "repo": "widget", "ghsa": "GHSA-c3f4-9h2j-mpqr"},
        ),
        ("https://github.com/advisories/GHSA-c3f4-9h2j-mpqr", {"ghsa": "GHSA-c3f4-9h2j-mpqr"}),
        ("https://github.com/acme", {}),
    ])
    def test_parse_url(self, url, expected):
        assert GitHubApiClient.parse_url(url) == expected

    def test_handles(self):
        client = GitHubApiClient()
        assert client.handles("https://github.com/acme/widget")
        assert not client.handles("https://gitlab.com/acme/widget")


@pytest.mark.asyncio
class TestGitHubLookup:
    """Test folding GitHub API calls into one payload."""

    async def test_repository_with_latest_releases(self):
        http = FakeHttp({
            f"{GH}/repos/acme/widget": REPO,
            f"{GH}/repos/acme/widget/releases?per_page=5": [RELEASE],
        })
        result = await GitHubApiClient().lookup("https://github.com/acme/widget", http)
        assert result.success
        assert result.json_data["source"] == "github"
        assert result.json_data["repository"] == REPO
        assert result.json_data["releases"] == [RELEASE]
        assert http.calls[0][1]["Accept"] == "application/vnd.github+json"

    async def test_release_tag_lookup(self):
        http = FakeHttp({
            f"{GH}/repos/acme/widget": REPO,
            f"{GH}/repos/acme/widget/releases/tags/v2.4.1": RELEASE,
        })
        result = await GitHubApiClient().lookup(RELEASE["html_url"], http)
        assert result.json_data["releases"] == [RELEASE]

    async def test_token_is_sent(self):
        http = FakeHttp({f"{GH}/repos/acme/widget": REPO})
        await GitHubApiClient(token="t0ken").lookup("https://github.com/acme/widget", http)
        assert http.calls[0][1]["Authorization"] == "Bearer t0ken"

    async def test_global_advisory(self):
        http = FakeHttp({f"{GH}/advisories/GHSA-c3f4-9h2j-mpqr": ADVISORY})
        result = await GitHubApiClient().lookup("https://github.com/advisories/GHSA-c3f4-9h2j-mpqr", http)
        assert result.success
        assert result.json_data["advisory"] == ADVISORY
        assert "repository" not in result.json_data

    async def test_missing_release_list_is_not_fatal(self):
        http = FakeHttp({f"{GH}/repos/acme/widget": REPO})
        result = await GitHubApiClient().lookup("https://github.com/acme/widget", http)
        assert result.success
        assert result.json_data["releases"] == []

    async def test_repository_forbidden_is_a_plain_failure(self):
        forbidden = FetchAttemptResult(
            url=f"{GH}/repos/acme/widget", strategy=FetchStrategy.API,
            outcome=FetchOutcome.BLOCKED, status_code=403,
            error="HTTP 403", error_kind=ErrorKind.BLOCKED,
        )
        http = FakeHttp({f"{GH}/repos/acme/widget": forbidden})
        result = await GitHubApiClient().lookup("https://github.com/acme/widget", http)
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.CLIENT_ERROR
        assert "repository lookup failed" in result.error

    async def test_non_repository_url(self):
        result = await GitHubApiClient().lookup("https://github.com/acme", FakeHttp({}))
        assert result.error_kind == ErrorKind.INVALID_INPUT


CVE = "CVE-2024-21412"
CVRF = {
    "DocumentTitle": {"Value": "February 2024 Security Updates"},
    "ProductTree": {"FullProductName": [
        {"ProductID": "11926", "Value": "Windows 10 Version 22H2 for x64-based Systems"},
        {"ProductID": "99999", "Value": "Unrelated product"},
    ]},
    "Vulnerability": [
        {"CVE": "CVE-2024-00000", "ProductStatuses": []},
        {
            "CVE": CVE,
            "Title": {"Value": "Internet Shortcut Files Security Feature Bypass"},
            "ProductStatuses": [{"ProductID": ["11926"], "Type": 3}],
            "Remediations": [{"Type": 2, "Description": {"Value": "5034763"}, "ProductID": ["11926"]}],
        },
    ],
}


class TestMsrcClient:
    def test_handles(self):
        client = MsrcApiClient()
        assert client.handles(f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE}")
        assert not client.handles("https://msrc.microsoft.com/update-guide/")


@pytest.mark.asyncio
class TestMsrcLookup:
    """Test the two-step MSRC update lookup."""

    def responses(self, **overrides):
        base = {
            f"{MSRC}/updates('{CVE}')": {"value": [{"ID": "2024-Feb"}]},
            f"{MSRC}/cvrf/2024-Feb": CVRF,
        }
        base.update(overrides)
        return base

    async def test_payload(self):
        url = f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE.lower()}"
        result = await MsrcApiClient().lookup(url, FakeHttp(self.responses()))
        assert result.success
        payload = result.json_data
        assert payload["cve"] == CVE
        assert payload["update_id"] == "2024-Feb"
        assert payload["document_title"] == "February 2024 Security Updates"
        assert payload["vulnerability"]["CVE"] == CVE
        assert payload["products"] == {"11926": "Windows 10 Version 22H2 for x64-based Systems"}

    async def test_unknown_cve(self):
        http = FakeHttp(self.responses(**{f"{MSRC}/updates('{CVE}')": {"value": []}}))
        result = await MsrcApiClient().lookup(f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE}", http)
        assert result.outcome == FetchOutcome.FAILED
        assert "update lookup" in result.error

    async def test_cve_missing_from_document(self):
        doc = dict(CVRF, Vulnerability=[{"CVE": "CVE-2024-00000"}])
        http = FakeHttp(self.responses(**{f"{MSRC}/cvrf/2024-Feb": doc}))
        result = await MsrcApiClient().lookup(f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE}", http)
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.CONTENT

    async def test_malformed_update_list_is_a_failure(self):
        http = FakeHttp(self.responses(**{f"{MSRC}/updates('{CVE}')": {"value": ["2024-Feb"]}}))
        result = await MsrcApiClient().lookup(f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE}", http)
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.CONTENT
        assert "update lookup" in result.error

    async def test_malformed_product_data_is_skipped(self):
        vuln = {"CVE": CVE, "ProductStatuses": [{"ProductID": "11926"}, "Fixed", {"ProductID": [11926, "11926"]}]}
        doc = dict(CVRF, DocumentTitle="February", ProductTree=[{"ProductID": "11926"}], Vulnerability=[vuln])
        http = FakeHttp(self.responses(**{f"{MSRC}/cvrf/2024-Feb": doc}))
        result = await MsrcApiClient().lookup(f"https://msrc.microsoft.com/update-guide/vulnerability/{CVE}", http)
        assert result.success
        assert result.json_data["products"] == {}
        assert result.json_data["document_title"] == "February"


@pytest.mark.asyncio
class TestApiFetcher:
    """Test client dispatch."""

    async def test_no_client_is_unavailable(self):
        fetcher = ApiFetcher(FakeHttp({}), clients=[])
        result = await fetcher.fetch("https://github.com/acme/widget")
        assert result.outcome == FetchOutcome.UNAVAILABLE
        assert not fetcher.is_available

    async def test_dispatches_to_matching_client(self):
        http = FakeHttp({f"{GH}/repos/acme/widget": REPO})
        fetcher = ApiFetcher(http, clients=[MsrcApiClient(), GitHubApiClient()])
        assert isinstance(fetcher.client_for("https://github.com/acme/widget"), GitHubApiClient)
        result = await fetcher.fetch("https://github.com/acme/widget")
        assert result.success
        assert result.strategy == FetchStrategy.API

    async def test_unhandled_url(self):
        fetcher = ApiFetcher(FakeHttp({}), clients=[GitHubApiClient()])
        result = await fetcher.fetch("https://vendor.example.com/advisory/1")
        assert result.outcome == FetchOutcome.UNAVAILABLE

    async def test_missing_client_warns_once(self, monkeypatch, caplog):
        monkeypatch.setattr("patchscout.fetchers.base._reported_unavailable", set())
        fetcher = ApiFetcher(FakeHttp({}), clients=[])

        with caplog.at_level(logging.WARNING, logger="patchscout.fetchers.base"):
            await fetcher.fetch("https://a.example.com/advisory/1")
            await fetcher.fetch("https://b.example.org/advisory/2")

        warnings = [r for r in caplog.records if "Vendor API unavailable" in r.getMessage()]
        assert len(warnings) == 1

    async def test_close_closes_shared_http(self):
        http = FakeHttp({})
        await ApiFetcher(http, clients=[GitHubApiClient()]).close()
        assert http.closed

    async def test_context_close_releases_api_http_when_http_is_replaced(self, settings, fake_fetcher):
        ctx = build_context(settings=settings, fetchers={FetchStrategy.HTTP: fake_fetcher(FetchStrategy.HTTP)})
        api_http = ctx.fetchers[FetchStrategy.API].http
        await api_http.start()

        await ctx.close()

        assert api_http._session is None
        assert ctx.fetchers[FetchStrategy.HTTP].closed
