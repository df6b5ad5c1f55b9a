"""Typed GitHub REST records. Unknown fields are ignored."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GitHubRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OwnerRecord(GitHubRecord):
    login: str
    type: Optional[str] = None


class RepositoryRecord(GitHubRecord):
    id: int
    name: str
    full_name: str
    owner: OwnerRecord
    description: Optional[str] = None
    private: bool = False
    html_url: Optional[str] = None
    clone_url: Optional[str] = None
    ssh_url: Optional[str] = None
    language: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    default_branch: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None


class RepositorySearchRecord(GitHubRecord):
    total_count: int = 0
    incomplete_results: bool = False
    items: List[RepositoryRecord] = Field(default_factory=list)


class LabelRecord(GitHubRecord):
    name: str
    color: Optional[str] = None
    description: Optional[str] = None


class MilestoneRecord(GitHubRecord):
    title: str
    number: int


class IssueRecord(GitHubRecord):
    id: int
    number: int
    title: str
    body: Optional[str] = None
    state: str
    user: Optional[OwnerRecord] = None
    labels: List[LabelRecord] = Field(default_factory=list)
    assignees: List[OwnerRecord] = Field(default_factory=list)
    milestone: Optional[MilestoneRecord] = None
    comments: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    closed_at: Optional[str] = None
    html_url: Optional[str] = None
    pull_request: Optional[Dict[str, Any]] = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class IssueSearchRecord(GitHubRecord):
    total_count: int = 0
    incomplete_results: bool = False
    items: List[IssueRecord] = Field(default_factory=list)


class PullRequestRefRecord(GitHubRecord):
    ref: str
    sha: str


class PullRequestRecord(GitHubRecord):
    id: int
    number: int
    title: str
    body: Optional[str] = None
    state: str
    user: Optional[OwnerRecord] = None
    head: PullRequestRefRecord
    base: PullRequestRefRecord
    draft: bool = False
    merged: bool = False
    mergeable: Optional[bool] = None
    merged_by: Optional[OwnerRecord] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    changed_files: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    closed_at: Optional[str] = None
    merged_at: Optional[str] = None
    html_url: Optional[str] = None


class BranchCommitRecord(GitHubRecord):
    sha: str
    url: Optional[str] = None


class BranchRecord(GitHubRecord):
    name: str
    commit: BranchCommitRecord
    protected: bool = False


class CommitAuthorRecord(GitHubRecord):
    name: Optional[str] = None
    email: Optional[str] = None
    date: Optional[str] = None


class CommitDetailRecord(GitHubRecord):
    message: str
    author: Optional[CommitAuthorRecord] = None
    committer: Optional[CommitAuthorRecord] = None


class CommitRecord(GitHubRecord):
    sha: str
    commit: CommitDetailRecord
    html_url: Optional[str] = None


class UserProfileRecord(GitHubRecord):
    id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    blog: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    html_url: Optional[str] = None
    created_at: Optional[str] = None


class TreeEntryRecord(GitHubRecord):
    path: str
    type: str  # "blob", "tree" or "commit" (submodule)
    size: Optional[int] = None
    sha: Optional[str] = None


class TreeRecord(GitHubRecord):
    sha: Optional[str] = None
    tree: List[TreeEntryRecord] = Field(default_factory=list)
    truncated: bool = False


class ContentRecord(GitHubRecord):
    path: str
    sha: Optional[str] = None
    size: int = 0
    encoding: Optional[str] = None
    content: Optional[str] = None
