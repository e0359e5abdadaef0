# type: ignore
# pyright: reportGeneralTypeIssues=false
# pyright: reportOptionalMemberAccess=false
"""
Incident Management Service
============================
Manages the incident lifecycle (creation, triage, resolution, closure and
reopening) with an append-only timeline, and serves operational reports:
KPIs (MTTR, SLA compliance), breakdowns, creation trends and exports.

Enforces a strict status state-machine:
    NEW         -> TRIAGED, IN_PROGRESS
    TRIAGED     -> IN_PROGRESS, ON_HOLD, RESOLVED
    IN_PROGRESS -> ON_HOLD, RESOLVED
    ON_HOLD     -> IN_PROGRESS, RESOLVED
    RESOLVED    -> CLOSED, REOPENED
    CLOSED      -> REOPENED
    REOPENED    -> IN_PROGRESS, ON_HOLD, RESOLVED

Port: 8002
"""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ims.controllers import incident_controller, report_controller, system_controller
from ims.core.config import settings
from ims.core.dependencies import get_incident_repo, get_incident_service
from ims.core.errors import IMSError
from ims.core.logging import get_logger
from ims.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger(settings.SERVICE_NAME)


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    repo = get_incident_repo()
    try:
        repo.create_schema()
        get_incident_service().seed_gauges()
    except Exception:
        logger.warning("Could not seed gauges - DB may not be ready yet")
    yield
    repo.dispose()
    logger.info("Shutting down - connection pool disposed")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Incident Management Service",
    description="Incident lifecycle, audit timeline and operational reporting.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(IMSError)
async def domain_exception_handler(request: Request, exc: IMSError):
    logger.info("Request rejected: %s %s -> %s %s",
                request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    return JSONResponse(status_code=500, content={"error": "internal_server_error", "detail": str(exc)})


app.include_router(system_controller.router)
app.include_router(incident_controller.router)
app.include_router(report_controller.router)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.SERVICE_PORT)
