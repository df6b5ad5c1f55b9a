"""
Jira and Confluence client on top of the authenticated gateway.

Both products are reached through the Atlassian platform gateway:
``{api_base}/{jira|confluence}/{cloudId}/{path}``.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from specgen.config import Settings, get_settings
from specgen.errors import ConfigurationError
from specgen.integrations.atlassian.records import (
    ConfluenceContentRecord,
    ConfluenceSearchRecord,
    JiraCreatedIssueRecord,
    JiraIssueRecord,
    JiraSearchRecord,
)
from specgen.integrations.auth import CredentialProvider, build_atlassian_credentials
from specgen.integrations.gateway import JIRA_PAGINATION, RestGateway, parse_record
from specgen.models import JiraIssue, RemoteRequest

logger = logging.getLogger(__name__)

DEFAULT_JIRA_FIELDS = (
    "summary,status,assignee,reporter,created,updated,"
    "priority,labels,components,issuetype,description"
)
DEFAULT_PAGE_EXPAND = "body.storage,version"

JIRA_ISSUE_PAGINATION = replace(JIRA_PAGINATION, items_key="issues")


def adf_document(text: str) -> Dict[str, Any]:
    """Wrap plain text as a one-paragraph Atlassian Document Format doc."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


def adf_to_text(node: Any) -> str:
    """Flatten an ADF node (or a plain string) to text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_to_text(child) for child in node)
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"

    inner = adf_to_text(node.get("content", []))
    if node_type == "listItem":
        return f"- {inner.strip()}\n"
    if node_type in ("paragraph", "heading", "codeBlock", "blockquote"):
        return f"{inner}\n"
    if node_type == "doc":
        return inner.strip()
    return inner


def _name(value: Any, key: str = "name") -> Optional[str]:
    if isinstance(value, dict):
        return value.get(key)
    return None


def to_jira_issue(record: JiraIssueRecord) -> JiraIssue:
    fields = record.fields
    description = adf_to_text(fields.get("description")) or None
    return JiraIssue(
        key=record.key,
        summary=fields.get("summary") or "",
        description=description,
        issue_type=_name(fields.get("issuetype")) or "Unknown",
        status=_name(fields.get("status")) or "Unknown",
        assignee=_name(fields.get("assignee"), "displayName"),
        reporter=_name(fields.get("reporter"), "displayName"),
        created=fields.get("created"),
        updated=fields.get("updated"),
        priority=_name(fields.get("priority")),
        labels=list(fields.get("labels") or []),
        components=[c["name"] for c in fields.get("components") or [] if isinstance(c, dict) and c.get("name")],
    )


def storage_body(value: str) -> Dict[str, Any]:
    return {"storage": {"value": value, "representation": "storage"}}


class AtlassianClient:
    """
    Jira issue search and Confluence page management.

    Usage:
        client = build_atlassian_client()
        issues = await client.search_issues("PROJ")
        url = await client.publish_document("SPACE", "Title", "<p>body</p>")
    """

    def __init__(
        self,
        jira: RestGateway,
        confluence: RestGateway,
        site_url: Optional[str] = None,
        page_size: int = 50,
        max_pages: int = 4,
    ):
        self.jira = jira
        self.confluence = confluence
        self.site_url = site_url.rstrip("/") if site_url else None
        self.page_size = page_size
        self.max_pages = max_pages

    async def close(self):
        await self.jira.close()
        await self.confluence.close()

    # Jira

    async def search_jira(
        self, jql: str, max_results: int = 50, fields: Optional[List[str]] = None
    ) -> JiraSearchRecord:
        """A single page of JQL results."""
        data = await self.jira.get(
            "/rest/api/3/search",
            {
                "jql": jql,
                "maxResults": max_results,
                "fields": ",".join(fields) if fields else DEFAULT_JIRA_FIELDS,
            },
        )
        return parse_record(JiraSearchRecord, data, "jira search")

    async def search_issues(self, project_key: str, jql: Optional[str] = None) -> List[JiraIssue]:
        """All issues of a project, newest first, across bounded pages."""
        query = jql or f'project = "{project_key}" ORDER BY created DESC'
        paged = await self.jira.send_paged(
            RemoteRequest(
                "GET",
                "/rest/api/3/search",
                query={"jql": query, "fields": DEFAULT_JIRA_FIELDS},
            ),
            page_size=self.page_size,
            max_pages=self.max_pages,
            pagination=JIRA_ISSUE_PAGINATION,
        )
        issues = [to_jira_issue(parse_record(JiraIssueRecord, item, "jira search")) for item in paged]
        logger.info(f"Fetched {len(issues)} Jira issues for {project_key} in {paged.pages_fetched} pages")
        return issues

    async def get_issue(self, issue_key: str, fields: Optional[List[str]] = None) -> JiraIssueRecord:
        path = f"/rest/api/3/issue/{issue_key}"
        params = {"fields": ",".join(fields)} if fields else None
        return parse_record(JiraIssueRecord, await self.jira.get(path, params), path)

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        issue_type: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        assignee: Optional[str] = None,
        labels: Optional[List[str]] = None,
        components: Optional[List[str]] = None,
    ) -> JiraCreatedIssueRecord:
        fields: Dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = adf_document(description)
        if priority:
            fields["priority"] = {"name": priority}
        if assignee:
            fields["assignee"] = {"accountId": assignee}
        if labels:
            fields["labels"] = labels
        if components:
            fields["components"] = [{"id": c} for c in components]

        data = await self.jira.post("/rest/api/3/issue", {"fields": fields})
        return parse_record(JiraCreatedIssueRecord, data, "jira create issue")

    # Confluence

    async def search_content(
        self, cql: str, limit: int = 25, space_key: Optional[str] = None
    ) -> ConfluenceSearchRecord:
        if space_key:
            cql = f'{cql} AND space="{space_key}"'
        data = await self.confluence.get("/rest/api/content/search", {"cql": cql, "limit": limit})
        return parse_record(ConfluenceSearchRecord, data, "confluence search")

    async def get_page(self, page_id: str, expand: Optional[List[str]] = None) -> ConfluenceContentRecord:
        path = f"/rest/api/content/{page_id}"
        params = {"expand": ",".join(expand) if expand else DEFAULT_PAGE_EXPAND}
        return parse_record(ConfluenceContentRecord, await self.confluence.get(path, params), path)

    async def find_page_by_title(self, space_key: str, title: str) -> Optional[ConfluenceContentRecord]:
        data = await self.confluence.get(
            "/rest/api/content",
            {"spaceKey": space_key, "title": title, "type": "page", "expand": "version"},
        )
        result = parse_record(ConfluenceSearchRecord, data, "confluence page lookup")
        return result.results[0] if result.results else None

    async def create_page(
        self,
        space_key: str,
        title: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> ConfluenceContentRecord:
        page: Dict[str, Any] = {
            "type": "page",
            "title": title,
            "space": {"key": space_key},
            "body": storage_body(content),
        }
        if parent_id:
            page["ancestors"] = [{"id": parent_id}]
        data = await self.confluence.post("/rest/api/content", page)
        return parse_record(ConfluenceContentRecord, data, "confluence create page")

    async def update_page(
        self, page_id: str, title: str, content: str, current_version: int
    ) -> ConfluenceContentRecord:
        """Replace a page body; Confluence requires the next version number."""
        path = f"/rest/api/content/{page_id}"
        data = await self.confluence.put(
            path,
            {
                "version": {"number": current_version + 1},
                "title": title,
                "type": "page",
                "body": storage_body(content),
            },
        )
        return parse_record(ConfluenceContentRecord, data, path)

    def page_url(self, page: ConfluenceContentRecord) -> str:
        webui = page.links.webui or ""
        if page.links.base:
            return f"{page.links.base}{webui}"
        if self.site_url:
            return f"{self.site_url}/wiki{webui}"
        return webui

    async def publish_document(
        self,
        space_key: str,
        title: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> str:
        """Create the page, or update it when a page with this title exists. Returns its URL."""
        existing = await self.find_page_by_title(space_key, title)
        if existing is None:
            page = await self.create_page(space_key, title, content, parent_id)
            logger.info(f"Created Confluence page {page.id} in {space_key}")
        else:
            if existing.version is None:
                existing = await self.get_page(existing.id, ["version"])
            current = existing.version.number if existing.version else 1
            page = await self.update_page(existing.id, title, content, current)
            logger.info(f"Updated Confluence page {page.id} to version {current + 1}")

        return self.page_url(page)


def build_atlassian_client(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialProvider] = None,
    **gateway_kwargs: Any,
) -> AtlassianClient:
    settings = settings or get_settings()
    if not settings.atlassian_cloud_id:
        raise ConfigurationError("Invalid Atlassian Cloud ID")

    credentials = credentials or build_atlassian_credentials(settings)
    base = settings.atlassian_api_base_url.rstrip("/")

    def gateway(product: str) -> RestGateway:
        return RestGateway(
            base_url=f"{base}/{product}/{settings.atlassian_cloud_id}",
            credentials=credentials,
            default_headers={"Accept": "application/json"},
            timeout=settings.http_timeout,
            name=product,
            **gateway_kwargs,
        )

    return AtlassianClient(
        jira=gateway("jira"),
        confluence=gateway("confluence"),
        site_url=settings.atlassian_site_url,
        page_size=settings.jira_page_size,
        max_pages=settings.jira_max_pages,
    )
