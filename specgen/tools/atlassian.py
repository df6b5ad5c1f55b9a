"""Jira and Confluence tool set backed by AtlassianClient."""

from typing import List, Optional

from pydantic import Field

from specgen.integrations.atlassian import AtlassianClient
from specgen.tools.base import ToolInput
from specgen.tools.registry import ToolRegistry, ToolSpec


class SearchJiraIssuesInput(ToolInput):
    jql: str = Field(min_length=1, description="JQL query to search for issues")
    max_results: int = Field(default=50, ge=1, le=100, description="Maximum number of results to return")
    fields: Optional[List[str]] = Field(default=None, description="Fields to include in the response")


class GetJiraIssueInput(ToolInput):
    issue_key: str = Field(min_length=1, description="The key of the issue (e.g., PROJ-123)")
    fields: Optional[List[str]] = None


class CreateJiraIssueInput(ToolInput):
    project_key: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    issue_type: str = Field(min_length=1, description="Type of issue (e.g., Bug, Task, Story)")
    description: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[str] = Field(default=None, description="Account ID of the assignee")
    labels: Optional[List[str]] = None
    components: Optional[List[str]] = Field(default=None, description="Component IDs for the issue")


class SearchConfluenceInput(ToolInput):
    cql: str = Field(min_length=1, description="CQL (Confluence Query Language) query")
    limit: int = Field(default=25, ge=1, le=100)
    space_key: Optional[str] = Field(default=None, description="Limit search to specific space")


class GetConfluencePageInput(ToolInput):
    page_id: str = Field(min_length=1)
    expand: Optional[List[str]] = Field(default=None, description="Properties to expand (e.g., body.storage, version)")


class CreateConfluencePageInput(ToolInput):
    space_key: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str = Field(description="Content of the page in storage format (HTML)")
    parent_id: Optional[str] = None


class UpdateConfluencePageInput(ToolInput):
    page_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str = Field(description="New content of the page in storage format (HTML)")
    version: int = Field(ge=1, description="Current version number of the page")


def _page_summary(client: AtlassianClient, page) -> dict:
    return {
        "id": page.id,
        "type": page.type,
        "status": page.status,
        "title": page.title,
        "space": page.space,
        "version": page.version,
        "webUrl": client.page_url(page),
    }


def register_atlassian_tools(registry: ToolRegistry, client: AtlassianClient) -> ToolRegistry:
    async def search_jira_issues(args: SearchJiraIssuesInput):
        result = await client.search_jira(args.jql, args.max_results, args.fields)
        return {
            "total": result.total,
            "issues": [
                {"key": i.key, "id": i.id, "fields": i.fields, "self": i.self_url}
                for i in result.issues
            ],
        }

    async def get_jira_issue(args: GetJiraIssueInput):
        issue = await client.get_issue(args.issue_key, args.fields)
        return {"key": issue.key, "id": issue.id, "fields": issue.fields, "self": issue.self_url}

    async def create_jira_issue(args: CreateJiraIssueInput):
        created = await client.create_issue(
            args.project_key,
            args.summary,
            args.issue_type,
            description=args.description,
            priority=args.priority,
            assignee=args.assignee,
            labels=args.labels,
            components=args.components,
        )
        return {"key": created.key, "id": created.id, "self": created.self_url}

    async def search_confluence_content(args: SearchConfluenceInput):
        result = await client.search_content(args.cql, args.limit, args.space_key)
        return {"size": result.size, "results": [_page_summary(client, p) for p in result.results]}

    async def get_confluence_page(args: GetConfluencePageInput):
        page = await client.get_page(args.page_id, args.expand)
        return {**_page_summary(client, page), "body": page.body}

    async def create_confluence_page(args: CreateConfluencePageInput):
        page = await client.create_page(args.space_key, args.title, args.content, args.parent_id)
        return _page_summary(client, page)

    async def update_confluence_page(args: UpdateConfluencePageInput):
        page = await client.update_page(args.page_id, args.title, args.content, args.version)
        return _page_summary(client, page)

    specs = [
        ToolSpec("search_jira_issues", "Search for Jira issues using JQL (Jira Query Language)",
                 SearchJiraIssuesInput, search_jira_issues),
        ToolSpec("get_jira_issue", "Get details of a specific Jira issue", GetJiraIssueInput, get_jira_issue),
        ToolSpec("create_jira_issue", "Create a new Jira issue", CreateJiraIssueInput, create_jira_issue),
        ToolSpec("search_confluence_content", "Search for content in Confluence",
                 SearchConfluenceInput, search_confluence_content),
        ToolSpec("get_confluence_page", "Get a specific Confluence page by ID",
                 GetConfluencePageInput, get_confluence_page),
        ToolSpec("create_confluence_page", "Create a new Confluence page",
                 CreateConfluencePageInput, create_confluence_page),
        ToolSpec("update_confluence_page", "Update an existing Confluence page",
                 UpdateConfluencePageInput, update_confluence_page),
    ]
    for spec in specs:
        spec.tags.append("atlassian")
        registry.register(spec)
    return registry
