"""
Document assembly: one generation call per section, in canonical order.

A failure in any step aborts the run; no partial document is returned.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from specgen.ai.client import TextGenerator
from specgen.ai.prompts import SECTION_TITLES, SYSTEM_PROMPTS, render_prompt
from specgen.models import (
    SECTION_ORDER,
    Document,
    DocumentMetadata,
    DocumentSection,
    GenerationContext,
    LLMProvider,
    SectionKind,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DocumentSection], None]


def document_title(context: GenerationContext) -> str:
    return f"{context.github.full_name} - Specification"


class DocumentAssemblyPipeline:
    """
    Generates the five specification sections sequentially.

    Usage:
        pipeline = DocumentAssemblyPipeline(LLMClient())
        document = await pipeline.generate_document(context, LLMProvider.OPENAI, "gpt-4o")
    """

    def __init__(self, generator: TextGenerator, clock: Optional[Callable[[], datetime]] = None):
        self.generator = generator
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    async def generate_section(
        self,
        kind: SectionKind,
        context: GenerationContext,
        provider: LLMProvider,
        model: str,
    ) -> DocumentSection:
        result = await self.generator.generate(
            render_prompt(kind, context),
            model=model,
            provider=provider,
            system_prompt=SYSTEM_PROMPTS[kind],
        )
        return DocumentSection(title=SECTION_TITLES[kind], body_text=result.text, kind=kind)

    async def generate_document(
        self,
        context: GenerationContext,
        provider: LLMProvider,
        model: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Document:
        sections: List[DocumentSection] = []
        for kind in SECTION_ORDER:
            logger.info(f"Generating {kind.value} section for {context.github.full_name}")
            section = await self.generate_section(kind, context, provider, model)
            sections.append(section)
            if on_progress is not None:
                on_progress(section)

        return Document(
            title=document_title(context),
            sections=tuple(sections),
            metadata=DocumentMetadata(
                generated_at=self._clock(),
                source_repo_id=context.github.full_name,
                source_project_id=context.jira_project_key or "",
                model_provider=LLMProvider(provider).value,
                model_id=model,
            ),
        )
