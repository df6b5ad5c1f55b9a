"""GitHub tool set backed by GitHubClient."""

from typing import List, Literal, Optional

from pydantic import Field

from specgen.errors import ToolExecutionError
from specgen.integrations.github import GitHubClient
from specgen.tools.base import ToolInput
from specgen.tools.registry import ToolRegistry, ToolSpec


class RepoRef(ToolInput):
    owner: str = Field(min_length=1, description="Repository owner")
    repo: str = Field(min_length=1, description="Repository name")


class SearchInput(ToolInput):
    query: str = Field(min_length=1, description="GitHub search query")
    sort: Optional[str] = Field(default=None, description="Sort field")
    order: Optional[Literal["asc", "desc"]] = None
    per_page: int = Field(default=30, ge=1, le=100)
    page: int = Field(default=1, ge=1)


class CreateRepositoryInput(ToolInput):
    name: str = Field(min_length=1, description="Repository name")
    description: Optional[str] = None
    private: bool = False
    auto_init: bool = False
    org: Optional[str] = Field(default=None, description="Organization to create the repository in")


class IssueRef(RepoRef):
    issue_number: int = Field(ge=1)


class CreateIssueInput(RepoRef):
    title: str = Field(min_length=1)
    body: Optional[str] = None
    assignees: Optional[List[str]] = None
    labels: Optional[List[str]] = None
    milestone: Optional[int] = None


class UpdateIssueInput(IssueRef):
    title: Optional[str] = None
    body: Optional[str] = None
    state: Optional[Literal["open", "closed"]] = None
    assignees: Optional[List[str]] = None
    labels: Optional[List[str]] = None
    milestone: Optional[int] = None


class ListPullRequestsInput(RepoRef):
    state: Literal["open", "closed", "all"] = "open"
    head: Optional[str] = None
    base: Optional[str] = None


class PullRequestRef(RepoRef):
    pull_number: int = Field(ge=1)


class CreatePullRequestInput(RepoRef):
    title: str = Field(min_length=1)
    head: str = Field(min_length=1, description="Branch with the changes")
    base: str = Field(min_length=1, description="Branch to merge into")
    body: Optional[str] = None
    draft: bool = False


class GetUserInput(ToolInput):
    username: Optional[str] = Field(default=None, description="Login; omit for the authenticated user")


class ListBranchesInput(RepoRef):
    protected: Optional[bool] = None


class ListCommitsInput(RepoRef):
    sha: Optional[str] = Field(default=None, description="Branch or commit SHA to start from")
    path: Optional[str] = Field(default=None, description="Only commits touching this path")
    author: Optional[str] = None
    since: Optional[str] = None
    until: Optional[str] = None


def register_github_tools(registry: ToolRegistry, client: GitHubClient) -> ToolRegistry:
    async def search_repositories(args: SearchInput):
        return await client.search_repositories(args.query, args.sort, args.order, args.per_page, args.page)

    async def get_repository(args: RepoRef):
        return await client.get_repository(args.owner, args.repo)

    async def create_repository(args: CreateRepositoryInput):
        return await client.create_repository(
            args.name, args.description, args.private, args.auto_init, args.org
        )

    async def search_issues(args: SearchInput):
        return await client.search_issues(args.query, args.sort, args.order, args.per_page, args.page)

    async def get_issue(args: IssueRef):
        return await client.get_issue(args.owner, args.repo, args.issue_number)

    async def create_issue(args: CreateIssueInput):
        return await client.create_issue(
            args.owner, args.repo, args.title, args.body, args.assignees, args.labels, args.milestone
        )

    async def update_issue(args: UpdateIssueInput):
        changes = args.model_dump(exclude={"owner", "repo", "issue_number"}, exclude_none=True)
        if not changes:
            raise ToolExecutionError("update_issue needs at least one field to change")
        return await client.update_issue(args.owner, args.repo, args.issue_number, **changes)

    async def list_pull_requests(args: ListPullRequestsInput):
        return await client.list_pull_requests(args.owner, args.repo, args.state, args.head, args.base)

    async def get_pull_request(args: PullRequestRef):
        return await client.get_pull_request(args.owner, args.repo, args.pull_number)

    async def create_pull_request(args: CreatePullRequestInput):
        return await client.create_pull_request(
            args.owner, args.repo, args.title, args.head, args.base, args.body, args.draft
        )

    async def get_user(args: GetUserInput):
        return await client.get_user(args.username)

    async def list_branches(args: ListBranchesInput):
        return await client.list_branches(args.owner, args.repo, args.protected)

    async def list_commits(args: ListCommitsInput):
        return await client.list_commits(
            args.owner, args.repo, args.sha, args.path, args.author, args.since, args.until
        )

    specs = [
        ToolSpec("search_repositories", "Search for GitHub repositories", SearchInput, search_repositories),
        ToolSpec("get_repository", "Get details of a specific repository", RepoRef, get_repository),
        ToolSpec("create_repository", "Create a new repository", CreateRepositoryInput, create_repository),
        ToolSpec("search_issues", "Search issues and pull requests", SearchInput, search_issues),
        ToolSpec("get_issue", "Get details of a specific issue", IssueRef, get_issue),
        ToolSpec("create_issue", "Create a new issue", CreateIssueInput, create_issue),
        ToolSpec("update_issue", "Update an existing issue", UpdateIssueInput, update_issue),
        ToolSpec("list_pull_requests", "List pull requests of a repository", ListPullRequestsInput, list_pull_requests),
        ToolSpec("get_pull_request", "Get details of a specific pull request", PullRequestRef, get_pull_request),
        ToolSpec("create_pull_request", "Create a new pull request", CreatePullRequestInput, create_pull_request),
        ToolSpec("get_user", "Get a GitHub user profile", GetUserInput, get_user),
        ToolSpec("list_branches", "List branches of a repository", ListBranchesInput, list_branches),
        ToolSpec("list_commits", "List commits of a repository", ListCommitsInput, list_commits),
    ]
    for spec in specs:
        spec.tags.append("github")
        registry.register(spec)
    return registry
