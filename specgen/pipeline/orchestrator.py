"""
Analyze orchestrator - ties the integrations and the document pipeline together.

1. Fetch a repository snapshot from GitHub
2. Fetch the project's Jira issues
3. Generate the five document sections
4. Render to Confluence storage format
5. Publish to Confluence when a space key is given

Any failure is reported as an ``error`` response; nothing is raised to the
caller.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from specgen.ai.client import TextGenerator
from specgen.ai.generation import DocumentAssemblyPipeline
from specgen.ai.rendering import render_document
from specgen.config import Settings, get_settings
from specgen.integrations.atlassian import AtlassianClient
from specgen.integrations.github import GitHubClient
from specgen.models import AnalyzeRequest, AnalyzeResponse, GenerationContext, LLMProvider

logger = logging.getLogger(__name__)


class AnalyzeStage(str, Enum):
    """Stages of an analyze run."""
    FETCH_GITHUB = "fetch_github"
    FETCH_JIRA = "fetch_jira"
    GENERATE = "generate"
    RENDER = "render"
    PUBLISH = "publish"
    COMPLETE = "complete"
    FAILED = "failed"


class AnalyzeOrchestrator:
    """
    Runs the analyze operation end to end.

    Usage:
        orchestrator = AnalyzeOrchestrator(github, atlassian, LLMClient())
        response = await orchestrator.analyze(
            github_repo="owner/repo",
            jira_project_key="PROJ",
            llm_provider="openai",
            llm_model="gpt-4o",
            confluence_space_key="DOCS",
        )
    """

    def __init__(
        self,
        github: GitHubClient,
        atlassian: AtlassianClient,
        generator: TextGenerator,
        pipeline: Optional[DocumentAssemblyPipeline] = None,
        settings: Optional[Settings] = None,
    ):
        self.github = github
        self.atlassian = atlassian
        self.pipeline = pipeline or DocumentAssemblyPipeline(generator)
        self.settings = settings or get_settings()

    async def close(self):
        await self.github.close()
        await self.atlassian.close()
        close = getattr(self.pipeline.generator, "close", None)
        if close is not None:
            await close()

    async def analyze(
        self,
        github_repo: str,
        jira_project_key: str,
        llm_provider: str,
        llm_model: str,
        confluence_space_key: Optional[str] = None,
        on_stage: Optional[Callable[[AnalyzeStage], None]] = None,
    ) -> AnalyzeResponse:
        def stage(value: AnalyzeStage):
            logger.info(f"analyze {github_repo}: {value.value}")
            if on_stage is not None:
                on_stage(value)

        try:
            request = AnalyzeRequest(
                github_repo=github_repo,
                jira_project_key=jira_project_key,
                llm_provider=llm_provider,
                llm_model=llm_model,
                confluence_space_key=confluence_space_key,
            )

            stage(AnalyzeStage.FETCH_GITHUB)
            repository = await self.github.fetch_repository_snapshot(request.github_repo)

            stage(AnalyzeStage.FETCH_JIRA)
            issues = await self.atlassian.search_issues(request.jira_project_key)

            stage(AnalyzeStage.GENERATE)
            context = GenerationContext(
                github=repository,
                jira_issues=issues,
                jira_project_key=request.jira_project_key,
                language=self.settings.document_language,
            )
            document = await self.pipeline.generate_document(
                context, LLMProvider(request.llm_provider), request.llm_model
            )

            stage(AnalyzeStage.RENDER)
            content = render_document(document)

            document_url = None
            if request.confluence_space_key:
                stage(AnalyzeStage.PUBLISH)
                document_url = await self.atlassian.publish_document(
                    request.confluence_space_key,
                    document.title,
                    content,
                    parent_id=self.settings.confluence_parent_page_id,
                )

            stage(AnalyzeStage.COMPLETE)
            return AnalyzeResponse(status="success", document_url=document_url)

        except Exception as e:
            logger.error(f"analyze {github_repo} failed: {e}", exc_info=True)
            stage(AnalyzeStage.FAILED)
            return AnalyzeResponse(status="error", error=str(e) or e.__class__.__name__)
