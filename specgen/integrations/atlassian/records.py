"""Typed Jira and Confluence REST records. Unknown fields are ignored."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AtlassianRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# Jira

class JiraIssueRecord(AtlassianRecord):
    id: str
    key: str
    self_url: Optional[str] = Field(default=None, alias="self")
    fields: Dict[str, Any] = Field(default_factory=dict)


class JiraSearchRecord(AtlassianRecord):
    total: int = 0
    start_at: int = Field(default=0, alias="startAt")
    max_results: int = Field(default=0, alias="maxResults")
    issues: List[JiraIssueRecord] = Field(default_factory=list)


class JiraCreatedIssueRecord(AtlassianRecord):
    id: str
    key: str
    self_url: Optional[str] = Field(default=None, alias="self")


# Confluence

class ConfluenceLinksRecord(AtlassianRecord):
    base: Optional[str] = None
    webui: Optional[str] = None


class ConfluenceVersionRecord(AtlassianRecord):
    number: int


class ConfluenceSpaceRecord(AtlassianRecord):
    key: str
    name: Optional[str] = None


class ConfluenceContentRecord(AtlassianRecord):
    id: str
    type: str = "page"
    status: Optional[str] = None
    title: str
    space: Optional[ConfluenceSpaceRecord] = None
    version: Optional[ConfluenceVersionRecord] = None
    body: Optional[Dict[str, Any]] = None
    links: ConfluenceLinksRecord = Field(default_factory=ConfluenceLinksRecord, alias="_links")

    @property
    def storage_value(self) -> Optional[str]:
        if not self.body:
            return None
        return (self.body.get("storage") or {}).get("value")


class ConfluenceSearchRecord(AtlassianRecord):
    size: int = 0
    results: List[ConfluenceContentRecord] = Field(default_factory=list)
    links: ConfluenceLinksRecord = Field(default_factory=ConfluenceLinksRecord, alias="_links")
