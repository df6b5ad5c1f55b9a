"""
GitHub REST client on top of the authenticated gateway.

Covers the endpoints the tool set exposes plus the repository snapshot the
document pipeline consumes (description, README, file tree, sample files).
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from specgen.config import Settings, get_settings
from specgen.errors import RemoteRequestError
from specgen.integrations.auth import CredentialProvider, build_github_credentials
from specgen.integrations.gateway import RestGateway, parse_record, parse_records
from specgen.integrations.github.records import (
    BranchRecord,
    CommitRecord,
    ContentRecord,
    IssueRecord,
    IssueSearchRecord,
    PullRequestRecord,
    RepositoryRecord,
    RepositorySearchRecord,
    TreeEntryRecord,
    TreeRecord,
    UserProfileRecord,
)
from specgen.models import FileNode, GitHubRepository, RemoteRequest

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = (
    ".py", ".js", ".ts", ".jsx", ".tsx",
    ".go", ".rs", ".java", ".c", ".cpp", ".h",
    ".rb", ".php", ".swift", ".kt", ".scala",
    ".sql", ".sh", ".bash", ".yaml", ".yml", ".json",
)

EXCLUDED_PATHS = (
    "node_modules", "vendor", "dist", "build", ".git",
    "__pycache__", ".venv", "venv", ".env",
    "coverage", ".pytest_cache", ".mypy_cache",
)

MAX_SAMPLE_FILE_SIZE = 500_000


def build_file_tree(entries: List[TreeEntryRecord]) -> List[FileNode]:
    """
    Turn a flat recursive git tree listing into nested FileNodes.

    Directories missing from the listing are created on demand; submodule
    entries are skipped. Order of first appearance is preserved.
    """
    roots: List[FileNode] = []
    directories: Dict[str, FileNode] = {}

    def directory_for(path: str) -> Optional[FileNode]:
        if not path:
            return None
        if path in directories:
            return directories[path]
        parent_path, _, _ = path.rpartition("/")
        node = FileNode(path=path, type="directory")
        directories[path] = node
        siblings = directory_for(parent_path)
        (siblings.children if siblings else roots).append(node)
        return node

    for entry in entries:
        if entry.type == "tree":
            directory_for(entry.path)
        elif entry.type == "blob":
            parent_path, _, _ = entry.path.rpartition("/")
            parent = directory_for(parent_path)
            (parent.children if parent else roots).append(FileNode(path=entry.path, type="file"))

    return roots


def _iter_files(nodes: List[FileNode]):
    for node in nodes:
        if node.type == "file":
            yield node
        else:
            yield from _iter_files(node.children)


def _decode_content(record: ContentRecord) -> str:
    if record.encoding == "base64" and record.content is not None:
        return base64.b64decode(record.content).decode("utf-8")
    return record.content or ""


def is_sample_candidate(entry: TreeEntryRecord) -> bool:
    if entry.type != "blob":
        return False
    if any(excl in entry.path for excl in EXCLUDED_PATHS):
        return False
    if not entry.path.endswith(CODE_EXTENSIONS):
        return False
    return (entry.size or 0) <= MAX_SAMPLE_FILE_SIZE


class GitHubClient:
    """
    Typed GitHub API calls.

    Usage:
        client = build_github_client()
        repo = await client.get_repository("octocat", "hello-world")
        snapshot = await client.fetch_repository_snapshot("octocat/hello-world")
    """

    def __init__(
        self,
        gateway: RestGateway,
        page_size: int = 100,
        max_pages: int = 10,
        sample_file_count: int = 3,
    ):
        self.gateway = gateway
        self.page_size = page_size
        self.max_pages = max_pages
        self.sample_file_count = sample_file_count

    async def close(self):
        await self.gateway.close()

    async def _list(self, path: str, params: Dict[str, Any], all_pages: bool) -> Any:
        if all_pages:
            paged = await self.gateway.send_paged(
                RemoteRequest("GET", path, query=params),
                page_size=self.page_size,
                max_pages=self.max_pages,
            )
            return paged.items
        return await self.gateway.get(path, params)

    # Repositories

    async def search_repositories(
        self,
        query: str,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        per_page: int = 30,
        page: int = 1,
    ) -> RepositorySearchRecord:
        data = await self.gateway.get(
            "/search/repositories",
            {"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )
        return parse_record(RepositorySearchRecord, data, "search/repositories")

    async def get_repository(self, owner: str, repo: str) -> RepositoryRecord:
        data = await self.gateway.get(f"/repos/{owner}/{repo}")
        return parse_record(RepositoryRecord, data, f"repos/{owner}/{repo}")

    async def create_repository(
        self,
        name: str,
        description: Optional[str] = None,
        private: bool = False,
        auto_init: bool = False,
        org: Optional[str] = None,
    ) -> RepositoryRecord:
        """Create under ``org`` when given, else for the authenticated user."""
        path = f"/orgs/{org}/repos" if org else "/user/repos"
        body: Dict[str, Any] = {"name": name, "private": private, "auto_init": auto_init}
        if description is not None:
            body["description"] = description
        data = await self.gateway.post(path, body)
        return parse_record(RepositoryRecord, data, path)

    # Issues

    async def search_issues(
        self,
        query: str,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        per_page: int = 30,
        page: int = 1,
    ) -> IssueSearchRecord:
        data = await self.gateway.get(
            "/search/issues",
            {"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )
        return parse_record(IssueSearchRecord, data, "search/issues")

    async def get_issue(self, owner: str, repo: str, issue_number: int) -> IssueRecord:
        path = f"/repos/{owner}/{repo}/issues/{issue_number}"
        return parse_record(IssueRecord, await self.gateway.get(path), path)

    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: Optional[str] = None,
        assignees: Optional[List[str]] = None,
        labels: Optional[List[str]] = None,
        milestone: Optional[int] = None,
    ) -> IssueRecord:
        path = f"/repos/{owner}/{repo}/issues"
        payload: Dict[str, Any] = {"title": title}
        if body is not None:
            payload["body"] = body
        if assignees:
            payload["assignees"] = assignees
        if labels:
            payload["labels"] = labels
        if milestone is not None:
            payload["milestone"] = milestone
        return parse_record(IssueRecord, await self.gateway.post(path, payload), path)

    async def update_issue(self, owner: str, repo: str, issue_number: int, **changes: Any) -> IssueRecord:
        """PATCH only the fields that were given."""
        path = f"/repos/{owner}/{repo}/issues/{issue_number}"
        payload = {k: v for k, v in changes.items() if v is not None}
        return parse_record(IssueRecord, await self.gateway.patch(path, payload), path)

    # Pull requests

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        state: str = "open",
        head: Optional[str] = None,
        base: Optional[str] = None,
        all_pages: bool = False,
    ) -> List[PullRequestRecord]:
        path = f"/repos/{owner}/{repo}/pulls"
        data = await self._list(path, {"state": state, "head": head, "base": base}, all_pages)
        return parse_records(PullRequestRecord, data, path)

    async def get_pull_request(self, owner: str, repo: str, pull_number: int) -> PullRequestRecord:
        path = f"/repos/{owner}/{repo}/pulls/{pull_number}"
        return parse_record(PullRequestRecord, await self.gateway.get(path), path)

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: Optional[str] = None,
        draft: bool = False,
    ) -> PullRequestRecord:
        path = f"/repos/{owner}/{repo}/pulls"
        payload: Dict[str, Any] = {"title": title, "head": head, "base": base, "draft": draft}
        if body is not None:
            payload["body"] = body
        return parse_record(PullRequestRecord, await self.gateway.post(path, payload), path)

    # Users, branches, commits

    async def get_user(self, username: Optional[str] = None) -> UserProfileRecord:
        """A named user, or the authenticated one."""
        path = f"/users/{username}" if username else "/user"
        return parse_record(UserProfileRecord, await self.gateway.get(path), path)

    async def list_branches(
        self, owner: str, repo: str, protected: Optional[bool] = None, all_pages: bool = False
    ) -> List[BranchRecord]:
        path = f"/repos/{owner}/{repo}/branches"
        params = {"protected": str(protected).lower() if protected is not None else None}
        return parse_records(BranchRecord, await self._list(path, params, all_pages), path)

    async def list_commits(
        self,
        owner: str,
        repo: str,
        sha: Optional[str] = None,
        path_filter: Optional[str] = None,
        author: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        all_pages: bool = False,
    ) -> List[CommitRecord]:
        path = f"/repos/{owner}/{repo}/commits"
        params = {"sha": sha, "path": path_filter, "author": author, "since": since, "until": until}
        return parse_records(CommitRecord, await self._list(path, params, all_pages), path)

    # Contents

    async def get_tree(self, owner: str, repo: str, ref: str) -> TreeRecord:
        path = f"/repos/{owner}/{repo}/git/trees/{ref}"
        tree = parse_record(TreeRecord, await self.gateway.get(path, {"recursive": "1"}), path)
        if tree.truncated:
            logger.warning(f"Tree for {owner}/{repo}@{ref} was truncated by GitHub")
        return tree

    async def get_readme(self, owner: str, repo: str) -> Optional[str]:
        """README text, or None when the repository has none."""
        path = f"/repos/{owner}/{repo}/readme"
        try:
            data = await self.gateway.get(path)
        except RemoteRequestError as e:
            if e.is_not_found:
                return None
            raise
        try:
            return _decode_content(parse_record(ContentRecord, data, path))
        except (binascii.Error, UnicodeDecodeError):
            logger.warning(f"README of {owner}/{repo} is not UTF-8 text")
            return None

    async def get_file_content(
        self, owner: str, repo: str, file_path: str, ref: Optional[str] = None
    ) -> Optional[str]:
        """
        Decoded text of one file.

        Returns None when the file is missing, is a directory, or is not
        UTF-8 text.
        """
        path = f"/repos/{owner}/{repo}/contents/{file_path}"
        try:
            data = await self.gateway.get(path, {"ref": ref})
        except RemoteRequestError as e:
            if e.is_not_found:
                logger.warning(f"File not found: {owner}/{repo}/{file_path}")
                return None
            raise

        # Handle case where path is a directory
        if isinstance(data, list):
            logger.warning(f"Path is a directory: {owner}/{repo}/{file_path}")
            return None

        try:
            return _decode_content(parse_record(ContentRecord, data, path))
        except (binascii.Error, UnicodeDecodeError):
            logger.info(f"Skipping non-text file: {file_path}")
            return None

    async def fetch_repository_snapshot(self, full_name: str) -> GitHubRepository:
        """
        Collect what the document pipeline needs from one repository.

        Sample file contents are attached to the first ``sample_file_count``
        code files of the tree.
        """
        owner, _, name = full_name.partition("/")
        repo = await self.get_repository(owner, name)
        readme = await self.get_readme(owner, name)

        structure: List[FileNode] = []
        if repo.default_branch:
            tree = await self.get_tree(owner, name, repo.default_branch)
            structure = build_file_tree(tree.tree)

            candidates = {e.path for e in tree.tree if is_sample_candidate(e)}
            sampled = 0
            for node in _iter_files(structure):
                if sampled >= self.sample_file_count:
                    break
                if node.path not in candidates:
                    continue
                content = await self.get_file_content(owner, name, node.path, repo.default_branch)
                if content is None:
                    continue
                node.content = content
                sampled += 1

        logger.info(f"Fetched snapshot of {full_name}: {len(structure)} top-level entries")
        return GitHubRepository(
            owner=repo.owner.login,
            name=repo.name,
            description=repo.description,
            readme=readme,
            default_branch=repo.default_branch,
            structure=structure,
        )


def build_github_client(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialProvider] = None,
    **gateway_kwargs: Any,
) -> GitHubClient:
    settings = settings or get_settings()
    gateway = RestGateway(
        base_url=settings.github_api_base_url,
        credentials=credentials or build_github_credentials(settings),
        default_headers={
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": settings.github_api_version,
        },
        timeout=settings.http_timeout,
        name="github",
        **gateway_kwargs,
    )
    return GitHubClient(
        gateway,
        page_size=settings.github_page_size,
        max_pages=settings.github_max_pages,
        sample_file_count=settings.sample_file_count,
    )
