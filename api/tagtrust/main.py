from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tagtrust.config import settings
from tagtrust.errors import TagTrustError
from tagtrust.logging_config import configure_logging
from tagtrust.metrics import metrics_endpoint
from tagtrust.middleware.logging_middleware import RequestLoggingMiddleware
from tagtrust.routers import auth, entities, moderation, reputation, tags, votes
from tagtrust.schemas.common import ErrorResponse

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure structured logging before anything else
    configure_logging()

    # Startup: create Redis connection and store on app.state
    app.state.redis = aioredis.from_url(
        settings.redis_url, encoding="utf-8", decode_responses=True
    )
    try:
        yield
    finally:
        # Shutdown: close Redis connection
        await app.state.redis.aclose()


app = FastAPI(title="TagTrust API", version="0.1.0", lifespan=lifespan)

# Register request logging middleware (runs on every request)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(TagTrustError)
async def tagtrust_error_handler(request: Request, exc: TagTrustError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request_failed", path=request.url.path, error=exc.code, detail=exc.detail)
    body = ErrorResponse(error=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# Register all API routers
app.include_router(auth.router)
app.include_router(tags.router)
app.include_router(votes.router)
app.include_router(entities.router)

# Admin surface
app.include_router(moderation.router)
app.include_router(reputation.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
