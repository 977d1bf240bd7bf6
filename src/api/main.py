"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.routers.drafts import router as drafts_router
from src.api.routers.library import router as library_router
from src.api.routers.session import router as session_router
from src.api.routers.session_config import (
    get_decision_service,
    get_orchestrator,
    session_auto_create_enabled,
)
from src.core.common.errors import DecisionServiceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    orchestrator = get_orchestrator()
    if session_auto_create_enabled() and orchestrator.session_id is None:
        try:
            await orchestrator.create_session()
        except DecisionServiceError as exc:
            logger.warning(
                "session.auto_create_failed",
                extra={"extra_fields": {"error": str(exc)}},
            )
    yield
    await orchestrator.close()
    service = get_decision_service()
    if service is not None:
        await service.aclose()


app = FastAPI(
    title="Decision Session API",
    version="0.1.0",
    description=(
        "Operator surface over a remote allocation decision service.\n\n"
        "Drafts are autosaved per field after a debounce; decision records are reconciled "
        "from the service with locally synthesised records as a fallback."
    ),
    openapi_tags=[
        {
            "name": "Decision Session",
            "description": "Session lifecycle, decisions, ticks, simulation and scenario time.",
        },
        {
            "name": "Session Drafts",
            "description": "Autosaved portfolio, constraint, inflow, posture and regime edits.",
        },
        {
            "name": "Operator Library",
            "description": "Saved policies, saved portfolios and policy comparisons.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app, session_id_provider=lambda: get_orchestrator().session_id)

app.include_router(session_router)
app.include_router(drafts_router)
app.include_router(library_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", summary="Health Check")
async def health() -> dict:
    orchestrator = get_orchestrator()
    return {
        "status": "ok",
        "session_id": orchestrator.session_id,
        "lifecycle": orchestrator.lifecycle.state,
    }
