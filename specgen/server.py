import logging
import os
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from specgen import __version__
from specgen.ai.client import LLMClient
from specgen.config import get_settings
from specgen.integrations.atlassian import build_atlassian_client
from specgen.integrations.github import build_github_client
from specgen.models import AnalyzeRequest
from specgen.pipeline import AnalyzeOrchestrator

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR.parent / '.env')

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Specgen API", version=__version__)

agent_router = APIRouter(prefix="/api/agent", tags=["agent"])

_orchestrator: Optional[AnalyzeOrchestrator] = None


def get_orchestrator() -> AnalyzeOrchestrator:
    """Build the orchestrator from settings on first use."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = AnalyzeOrchestrator(
            github=build_github_client(settings),
            atlassian=build_atlassian_client(settings),
            generator=LLMClient(settings),
            settings=settings,
        )
    return _orchestrator


# ===================
# AGENT ENDPOINTS
# ===================

@agent_router.post("/analyze")
async def analyze(
    request: AnalyzeRequest,
    orchestrator: AnalyzeOrchestrator = Depends(get_orchestrator),
):
    """Generate a specification document from a repository and a Jira project"""
    response = await orchestrator.analyze(
        github_repo=request.github_repo,
        jira_project_key=request.jira_project_key,
        llm_provider=request.llm_provider,
        llm_model=request.llm_model,
        confluence_space_key=request.confluence_space_key,
    )
    body = response.model_dump(by_alias=True, exclude_none=True)
    if response.status == "error":
        return JSONResponse(status_code=500, content=body)
    return body


@agent_router.get("/status/{analysis_id}")
async def get_status(analysis_id: str):
    """Analysis runs synchronously, so every id is complete"""
    return {"id": analysis_id, "status": "completed"}


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(agent_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("shutdown")
async def shutdown_clients():
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None
        logger.info("Outbound clients closed")


def main():
    uvicorn.run("specgen.server:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))


if __name__ == "__main__":
    main()
