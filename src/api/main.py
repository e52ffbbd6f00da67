import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers import work_requests_config
from src.api.routers.work_requests import get_workflow_engine
from src.api.routers.work_requests import router as work_request_router
from src.api.sla_sweeper import SlaSweeper


@asynccontextmanager
async def _app_lifespan(app: FastAPI):
    validate_persistence_profile_guardrails()
    sweeper = SlaSweeper(
        engine_factory=get_workflow_engine,
        interval_seconds=work_requests_config.sla_sweep_interval_seconds(),
    )
    app.state.sla_sweeper = sweeper
    sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()


app = FastAPI(
    title="Lost and Found Workflow API",
    version="0.1.0",
    description=(
        "Cross-organization approval workflow for lost-and-found item claims and transfers.\n\n"
        "Requests move through `PENDING`, `IN_PROGRESS`, and `APPROVED` before reaching "
        "one of the terminal states `REJECTED`, `CANCELLED`, or `COMPLETED`."
    ),
    openapi_tags=[
        {
            "name": "Work Request Workflow",
            "description": "Work request creation, approval actions, queries, and SLA views.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

setup_observability(app)
app.include_router(work_request_router)


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


@app.get("/health", tags=["Health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/live", tags=["Health"])
def health_live() -> dict[str, str]:
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"])
def health_ready() -> dict[str, str]:
    return {"status": "ready"}
