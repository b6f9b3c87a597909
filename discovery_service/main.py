"""FastAPI application initialization."""

from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration

from discovery_service.api import health, pdf, scrape
from discovery_service.config import get_settings
from discovery_service.constants import SERVICE_NAME, SERVICE_VERSION
from discovery_service.logging_config import setup_logfire
from discovery_service.middleware.correlation_id import (
    CORRELATION_ID_HEADER,
    CorrelationIDMiddleware,
)
from discovery_service.middleware.rate_limiter import (
    GENERAL_LIMIT_MESSAGE,
    RATE_LIMIT_HEADERS,
    SCRAPE_LIMIT_MESSAGE,
    RateLimitMiddleware,
    get_general_rate_limiter,
    get_scrape_rate_limiter,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()

    # Initialize Logfire for observability
    setup_logfire(app)

    # Initialize Sentry if DSN is provided
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
            integrations=[FastApiIntegration()],
        )

    logfire.info(
        "Application startup complete",
        environment=settings.env,
        port=settings.port,
        allowed_origins=settings.allowed_origin_list,
        rate_limit=f"{settings.rate_limit_max_requests}/{settings.rate_limit_window_seconds}s",
        scrape_rate_limit=(
            f"{settings.scrape_rate_limit_max_requests}"
            f"/{settings.scrape_rate_limit_window_seconds}s"
        ),
        max_discovered_pages=settings.max_discovered_pages,
        max_concurrent_scrapes=settings.max_concurrent_scrapes,
    )

    yield

    logfire.info("Application shutdown complete")


app = FastAPI(
    title="Web Discovery Service",
    description="Company website discovery, text extraction and HTML-to-PDF rendering",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# Starlette wraps each new middleware around the existing stack, so the last
# one added runs first: correlation ID -> CORS -> general limit -> scrape limit.
app.add_middleware(
    RateLimitMiddleware,
    limiter_provider=get_scrape_rate_limiter,
    message=SCRAPE_LIMIT_MESSAGE,
    paths=["/scrape"],
)
app.add_middleware(
    RateLimitMiddleware,
    limiter_provider=get_general_rate_limiter,
    message=GENERAL_LIMIT_MESSAGE,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[*RATE_LIMIT_HEADERS, CORRELATION_ID_HEADER],
)
app.add_middleware(CorrelationIDMiddleware)

# Register routers
app.include_router(health.router, tags=["health"])
app.include_router(scrape.router, tags=["scrape"])
app.include_router(pdf.router, tags=["pdf"])


@app.get("/")
def root():
    """Root endpoint."""
    return {"status": "ok", "service": SERVICE_NAME, "version": SERVICE_VERSION}


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "discovery_service.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.env == "local",
    )
