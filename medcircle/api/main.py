"""
medcircle.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn medcircle.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from medcircle.api.deps import get_engine  # noqa: E402
from medcircle.api.routes.karma import router as karma_router  # noqa: E402
from medcircle.api.routes.moderation import router as moderation_router  # noqa: E402
from medcircle.api.routes.notifications import router as notifications_router  # noqa: E402
from medcircle.api.routes.verification import router as verification_router  # noqa: E402
from medcircle.errors import Unauthenticated, ValidationFailure  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: warm the DB engine."""
    engine = get_engine()
    logger.info("MedCircle API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("MedCircle API shutting down")


app = FastAPI(
    title="MedCircle Community API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Domain errors → HTTP
# ---------------------------------------------------------------------------
@app.exception_handler(Unauthenticated)
async def _unauthenticated(request: Request, exc: Unauthenticated) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_401_UNAUTHORIZED)


@app.exception_handler(ValidationFailure)
async def _validation_failure(request: Request, exc: ValidationFailure) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=422)


# Mount routers
app.include_router(karma_router, prefix="/api")
app.include_router(moderation_router, prefix="/api")
app.include_router(verification_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
