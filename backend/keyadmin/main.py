from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from keyadmin.config import settings
from keyadmin.logging_config import setup_logging
from keyadmin.middleware.logging import CORRELATION_HEADER, LoggingMiddleware
from keyadmin.middleware.rate_limit import limiter
from keyadmin.routers import admin_discord
from keyadmin.services.discord_service import send_error_alert
from keyadmin.services.kv_store import build_store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and own the store for the lifetime of the app."""
    setup_logging()
    store = build_store(settings)
    app.state.store = store
    yield
    await store.close()


app = FastAPI(
    title="ExHub Key Admin",
    description="Discord key issuance and cascading account deletion across legacy and indexed stores",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    await send_error_alert(
        type(exc).__name__,
        str(exc),
        path=request.url.path,
        correlation_id=correlation_id,
        status_code=500,
    )
    headers = {CORRELATION_HEADER: correlation_id} if correlation_id else None
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
        headers=headers,
    )


app.add_middleware(LoggingMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(admin_discord.router, prefix="/admin/discord", tags=["admin"])


@app.get("/health")
async def health_check(request: Request):
    store = getattr(request.app.state, "store", None)
    backend = "remote" if store is not None and store.has_remote else "file"
    return {"status": "healthy", "kv": backend}
