from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Literal, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# Enums
class AuthScheme(str, Enum):
    APP_JWT = "app-jwt"
    OAUTH2_CLIENT_CREDENTIALS = "oauth2-client-credentials"
    BASIC = "basic"


class SectionKind(str, Enum):
    OVERVIEW = "overview"
    REQUIREMENTS = "requirements"
    ARCHITECTURE = "architecture"
    DATAFLOW = "dataflow"
    TECHNICAL_DETAILS = "technical-details"


# Canonical rendering order of document sections
SECTION_ORDER: Tuple[SectionKind, ...] = (
    SectionKind.OVERVIEW,
    SectionKind.REQUIREMENTS,
    SectionKind.ARCHITECTURE,
    SectionKind.DATAFLOW,
    SectionKind.TECHNICAL_DETAILS,
)


class LLMProvider(str, Enum):
    TOGETHER = "together"
    OPENAI = "openai"
    BEDROCK = "bedrock"


# Gateway values
@dataclass(frozen=True)
class Credential:
    """A bearer credential for one auth scheme."""
    scheme: AuthScheme
    bearer_value: str
    expires_at: Optional[datetime] = None

    @property
    def authorization_header(self) -> str:
        if self.scheme == AuthScheme.BASIC:
            return f"Basic {self.bearer_value}"
        return f"Bearer {self.bearer_value}"


@dataclass(frozen=True)
class RemoteRequest:
    """One HTTP call against a target API."""
    method: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Any] = None

    def with_query(self, **params: Any) -> "RemoteRequest":
        return RemoteRequest(
            method=self.method,
            path=self.path,
            query={**self.query, **params},
            body=self.body,
        )


@dataclass
class PagedResult(Generic[T]):
    """Items accumulated across sequentially fetched pages."""
    items: List[T] = field(default_factory=list)
    pages_fetched: int = 0

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


# Source data
class FileNode(BaseModel):
    path: str
    type: Literal["file", "directory"]
    content: Optional[str] = None
    children: List["FileNode"] = Field(default_factory=list)


FileNode.model_rebuild()


class GitHubRepository(BaseModel):
    owner: str
    name: str
    description: Optional[str] = None
    readme: Optional[str] = None
    default_branch: Optional[str] = None
    structure: List[FileNode] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class JiraIssue(BaseModel):
    key: str
    summary: str
    description: Optional[str] = None
    issue_type: str = "Unknown"
    status: str = "Unknown"
    assignee: Optional[str] = None
    reporter: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    priority: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    components: List[str] = Field(default_factory=list)


class GenerationContext(BaseModel):
    """Everything a section prompt may embed."""
    github: GitHubRepository
    jira_issues: List[JiraIssue] = Field(default_factory=list)
    jira_project_key: Optional[str] = None
    language: str = "English"


# Document
class DocumentSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    body_text: str
    kind: SectionKind


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    source_repo_id: str
    source_project_id: str
    model_provider: str
    model_id: str


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    sections: Tuple[DocumentSection, ...]
    metadata: DocumentMetadata


# Tool results
@dataclass(frozen=True)
class ToolInvocationResult:
    """Either ``ok`` (payload) or ``error`` (message), never both."""
    ok: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, payload: Any) -> "ToolInvocationResult":
        return cls(ok=payload)

    @classmethod
    def failure(cls, message: str) -> "ToolInvocationResult":
        return cls(error=message)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.is_error:
            return {"error": self.error}
        return {"ok": self.ok}


# Inbound contract
class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    github_repo: str = Field(alias="githubRepo", pattern=r"^[^/]+/[^/]+$")
    jira_project_key: str = Field(alias="jiraProjectKey", min_length=1)
    llm_provider: LLMProvider = Field(alias="llmProvider")
    llm_model: str = Field(alias="llmModel", min_length=1)
    confluence_space_key: Optional[str] = Field(default=None, alias="confluenceSpaceKey")


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["success", "error"]
    document_url: Optional[str] = Field(default=None, alias="documentUrl")
    error: Optional[str] = None
