"""
Tests for the Atlassian client

Covers:
- Jira search pagination and issue mapping (ADF descriptions)
- Confluence page creation, update and publish-or-update
- Page URL resolution
"""

import json

import httpx
import pytest

from specgen.errors import ConfigurationError
from specgen.integrations.atlassian import AtlassianClient, adf_to_text, build_atlassian_client
from specgen.integrations.atlassian.client import adf_document
from specgen.integrations.gateway import RestGateway
from tests.conftest import RecordingTransport

ADF = {
    "type": "doc",
    "version": 1,
    "content": [
        {"type": "paragraph", "content": [{"type": "text", "text": "First line"}]},
        {
            "type": "bulletList",
            "content": [
                {"type": "listItem", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "item"}]}]}
            ],
        },
    ],
}


def jira_issue(n: int, issue_type: str = "Story") -> dict:
    return {
        "id": str(1000 + n),
        "key": f"PROJ-{n}",
        "self": f"https://api.atlassian.com/issue/{n}",
        "fields": {
            "summary": f"Issue {n}",
            "description": ADF,
            "issuetype": {"name": issue_type},
            "status": {"name": "In Progress"},
            "priority": {"name": "High"},
            "assignee": {"displayName": "Dev One"},
            "reporter": None,
            "labels": ["backend"],
            "components": [{"name": "api"}],
            "created": "2024-01-01T00:00:00.000+0000",
        },
    }


def page(page_id="42", version=1, **links):
    return {
        "id": page_id,
        "type": "page",
        "status": "current",
        "title": "octo/hello - Specification",
        "space": {"key": "DOCS"},
        "version": {"number": version},
        "_links": links or {"base": "https://acme.atlassian.net/wiki", "webui": f"/spaces/DOCS/pages/{page_id}"},
    }


def make_client(handler, static_credentials, **kwargs):
    transport = RecordingTransport(handler)
    jira = RestGateway("https://api.atlassian.com/ex/jira/cloud-1", static_credentials, transport=transport)
    confluence = RestGateway("https://api.atlassian.com/ex/confluence/cloud-1", static_credentials, transport=transport)
    return AtlassianClient(jira, confluence, **kwargs), transport


# =============================================================================
# ADF
# =============================================================================


class TestAdf:
    """Tests for Atlassian Document Format helpers."""

    def test_flattens_paragraphs_and_lists(self):
        assert adf_to_text(ADF) == "First line\n- item"

    def test_plain_string_passes_through(self):
        assert adf_to_text("already text") == "already text"
        assert adf_to_text(None) == ""

    def test_document_wraps_text(self):
        doc = adf_document("hello")

        assert doc["type"] == "doc"
        assert doc["content"][0]["content"][0] == {"type": "text", "text": "hello"}


# =============================================================================
# Jira
# =============================================================================


class TestJira:
    """Tests for Jira operations."""

    @pytest.mark.asyncio
    async def test_search_issues_pages_with_offsets(self, static_credentials):
        issues = [jira_issue(i) for i in range(3)]

        def handler(request):
            start = int(request.url.params["startAt"])
            size = int(request.url.params["maxResults"])
            return httpx.Response(200, json={"total": 3, "issues": issues[start:start + size]})

        client, transport = make_client(handler, static_credentials, page_size=2, max_pages=4)

        result = await client.search_issues("PROJ")

        assert [i.key for i in result] == ["PROJ-0", "PROJ-1", "PROJ-2"]
        first = transport.requests[0]
        assert first.url.path == "/ex/jira/cloud-1/rest/api/3/search"
        assert first.url.params["jql"] == 'project = "PROJ" ORDER BY created DESC'
        assert [r.url.params["startAt"] for r in transport.requests] == ["0", "2"]

    @pytest.mark.asyncio
    async def test_issue_mapping(self, static_credentials):
        client, _ = make_client(
            lambda r: httpx.Response(200, json={"issues": [jira_issue(7, "Bug")]}), static_credentials
        )

        [issue] = await client.search_issues("PROJ")

        assert issue.summary == "Issue 7"
        assert issue.description == "First line\n- item"
        assert issue.issue_type == "Bug"
        assert issue.status == "In Progress"
        assert issue.priority == "High"
        assert issue.assignee == "Dev One"
        assert issue.reporter is None
        assert issue.labels == ["backend"]
        assert issue.components == ["api"]

    @pytest.mark.asyncio
    async def test_empty_project(self, static_credentials):
        client, transport = make_client(
            lambda r: httpx.Response(200, json={"total": 0, "issues": []}), static_credentials
        )

        assert await client.search_issues("EMPTY") == []
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_create_issue_body(self, static_credentials):
        client, transport = make_client(
            lambda r: httpx.Response(201, json={"id": "1", "key": "PROJ-1", "self": "x"}), static_credentials
        )

        created = await client.create_issue(
            "PROJ", "Summary", "Task", description="Details", labels=["a"], components=["10"]
        )

        assert created.key == "PROJ-1"
        fields = json.loads(transport.requests[0].content)["fields"]
        assert fields["project"] == {"key": "PROJ"}
        assert fields["issuetype"] == {"name": "Task"}
        assert fields["description"] == adf_document("Details")
        assert fields["components"] == [{"id": "10"}]
        assert "priority" not in fields


# =============================================================================
# Confluence
# =============================================================================


class TestConfluence:
    """Tests for Confluence operations."""

    @pytest.mark.asyncio
    async def test_create_page_body(self, static_credentials):
        client, transport = make_client(lambda r: httpx.Response(200, json=page()), static_credentials)

        await client.create_page("DOCS", "Title", "<p>x</p>", parent_id="7")

        request = transport.requests[0]
        assert request.url.path == "/ex/confluence/cloud-1/rest/api/content"
        assert json.loads(request.content) == {
            "type": "page",
            "title": "Title",
            "space": {"key": "DOCS"},
            "body": {"storage": {"value": "<p>x</p>", "representation": "storage"}},
            "ancestors": [{"id": "7"}],
        }

    @pytest.mark.asyncio
    async def test_create_page_without_parent(self, static_credentials):
        client, transport = make_client(lambda r: httpx.Response(200, json=page()), static_credentials)

        await client.create_page("DOCS", "Title", "<p>x</p>")

        assert "ancestors" not in json.loads(transport.requests[0].content)

    @pytest.mark.asyncio
    async def test_update_increments_version(self, static_credentials):
        client, transport = make_client(lambda r: httpx.Response(200, json=page(version=5)), static_credentials)

        await client.update_page("42", "Title", "<p>y</p>", current_version=4)

        request = transport.requests[0]
        assert request.method == "PUT"
        assert json.loads(request.content)["version"] == {"number": 5}

    @pytest.mark.asyncio
    async def test_publish_creates_when_absent(self, static_credentials):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"size": 0, "results": []})
            return httpx.Response(200, json=page("99"))

        client, transport = make_client(handler, static_credentials)

        url = await client.publish_document("DOCS", "octo/hello - Specification", "<p>x</p>")

        assert url == "https://acme.atlassian.net/wiki/spaces/DOCS/pages/99"
        assert [r.method for r in transport.requests] == ["GET", "POST"]
        lookup = transport.requests[0].url.params
        assert lookup["spaceKey"] == "DOCS"
        assert lookup["title"] == "octo/hello - Specification"

    @pytest.mark.asyncio
    async def test_publish_updates_existing_page(self, static_credentials):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"size": 1, "results": [page("42", version=3)]})
            return httpx.Response(200, json=page("42", version=4))

        client, transport = make_client(handler, static_credentials)

        await client.publish_document("DOCS", "octo/hello - Specification", "<p>x</p>")

        update = transport.requests[1]
        assert update.method == "PUT"
        assert update.url.path.endswith("/rest/api/content/42")
        assert json.loads(update.content)["version"]["number"] == 4

    def test_page_url_falls_back_to_site(self, static_credentials):
        from specgen.integrations.atlassian.records import ConfluenceContentRecord

        client, _ = make_client(lambda r: httpx.Response(200), static_credentials, site_url="https://acme.atlassian.net/")
        record = ConfluenceContentRecord.model_validate(page(webui="/spaces/DOCS/pages/1"))

        assert client.page_url(record) == "https://acme.atlassian.net/wiki/spaces/DOCS/pages/1"

    def test_factory_requires_cloud_id(self, settings, static_credentials):
        without_cloud = settings.model_copy(update={"atlassian_cloud_id": None})

        with pytest.raises(ConfigurationError):
            build_atlassian_client(without_cloud, credentials=static_credentials)

    def test_factory_routes_through_platform_gateway(self, settings, static_credentials):
        client = build_atlassian_client(settings, credentials=static_credentials)

        assert client.jira.base_url == "https://api.atlassian.com/ex/jira/cloud-1"
        assert client.confluence.base_url == "https://api.atlassian.com/ex/confluence/cloud-1"
        assert client.jira.default_headers["Accept"] == "application/json"
