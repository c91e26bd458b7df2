"""
skystand.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn skystand.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from skystand.api.auth import router as auth_router  # noqa: E402
from skystand.api.deps import get_config, get_engine  # noqa: E402
from skystand.api.routes.activity_logs import router as activity_logs_router  # noqa: E402
from skystand.api.routes.airlines import router as airlines_router  # noqa: E402
from skystand.api.routes.airports import router as airports_router  # noqa: E402
from skystand.api.routes.discord_feedback import router as discord_feedback_router  # noqa: E402
from skystand.api.routes.discord_logs import router as discord_logs_router  # noqa: E402
from skystand.api.routes.parkings import router as parkings_router  # noqa: E402
from skystand.api.routes.stats import router as stats_router  # noqa: E402
from skystand.api.routes.users import router as users_router  # noqa: E402
from skystand.api.tasks import start_retention_task  # noqa: E402
from skystand.errors import InternalError, SkystandError  # noqa: E402
from skystand.services.activity_logger import audit_failure_count  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Dashboard origins allowed to call the API.

    ``CORS_ALLOW_ORIGINS`` takes a comma-separated list; otherwise the single
    ``FRONTEND_URL`` is used.  Neither set means no cross-origin access.
    """
    configured = os.getenv("CORS_ALLOW_ORIGINS") or os.getenv("FRONTEND_URL") or ""
    origins = (part.strip().rstrip("/") for part in configured.split(","))
    return [origin for origin in origins if origin]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine, schedule retention."""
    engine = get_engine()
    retention = start_retention_task(engine, get_config())
    logger.info("Skystand API started — engine ready (%s)", engine.url.database)
    yield
    retention.cancel()
    with suppress(asyncio.CancelledError):
        await retention
    logger.info("Skystand API shutting down")


app = FastAPI(
    title="Skystand API",
    version="1.0.0",
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
# Error handling — every error leaves as {"message": ..., "errors"?: {...}}
# ---------------------------------------------------------------------------
@app.exception_handler(SkystandError)
async def _skystand_error(request: Request, exc: SkystandError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header", "form"):
            loc = loc[1:]
        message = str(err.get("msg", "Valeur invalide."))
        errors.setdefault(".".join(loc) or "body", []).append(message.removeprefix("Value error, "))
    return JSONResponse(
        status_code=400,
        content={"message": "Erreur de validation.", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(parkings_router, prefix="/api")
app.include_router(airports_router, prefix="/api")
app.include_router(airlines_router, prefix="/api")
app.include_router(activity_logs_router, prefix="/api")
app.include_router(discord_feedback_router, prefix="/api")
app.include_router(discord_logs_router, prefix="/api")
app.include_router(stats_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok", "auditFailures": audit_failure_count()}
