"""
FastAPI application for the portal messaging service.
This module sets up the API server with routes, middleware, and error handling.
"""

import ipaddress
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_fastapi_instrumentator import metrics as instrumentator_metrics

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.core.config import get_settings
from portal_messaging.core.error_handlers import (
    base_exception_handler,
    unhandled_exception_handler,
)
from portal_messaging.core.exceptions import BaseAppException
from portal_messaging.routes import conversations, health
from portal_messaging.services.conversation_registry import ConversationRegistry

# Configure logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("portal_messaging.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Application startup...")

    settings = get_settings()
    app.state.settings = settings

    logger.info(
        "Initializing employment service client at %s", settings.EMPLOYMENT_API_URL
    )
    api = EmploymentAPI(settings=settings)
    await api.setup()
    app.state.employment_api = api

    app.state.registry = ConversationRegistry(api, settings)
    logger.info(
        "Conversation registry ready (push enabled: %s)", settings.PUSH_ENABLED
    )

    # Yield control to the application
    yield

    # Shutdown
    logger.info("Application shutdown...")
    await app.state.registry.close_all()
    await api.cleanup()


# Create FastAPI application
app = FastAPI(
    title=get_settings().PROJECT_NAME,
    docs_url="/api/docs",
    openapi_url=f"{get_settings().API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
# Starlette forbids wildcard origins combined with credentials
_origins = get_settings().CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False if _origins == ["*"] else True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up Prometheus metrics
# DON'T call .expose() - /metrics is served below so it shares the default REGISTRY
instrumentator = Instrumentator(
    should_group_status_codes=False,
    should_ignore_untemplated=True,
    should_respect_env_var=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/health", "/health/ready", "/health/live"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.add(instrumentator_metrics.default())
instrumentator.add(
    instrumentator_metrics.latency(buckets=(0.1, 0.5, 1, 2, 5, 10, 30))
)
instrumentator.instrument(app)
logger.info("Prometheus metrics instrumentation initialized")


def is_internal_client(host: str) -> bool:
    """True for loopback, private and link-local clients (with or without port)."""
    if host == "localhost":
        return True
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.rsplit(":", 1)[0]
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_link_local


@app.get("/metrics", include_in_schema=False)
async def metrics(request: Request):
    """Prometheus metrics; production only answers internal clients."""
    environment = str(get_settings().ENVIRONMENT).strip().lower()
    if environment in {"production", "prod"}:
        host = request.client.host if request.client else ""
        if not is_internal_client(host or ""):
            raise HTTPException(status_code=404)

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(conversations.router, prefix=get_settings().API_V1_STR)

# Register exception handlers
app.add_exception_handler(BaseAppException, base_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, unhandled_exception_handler)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    # Bind to 0.0.0.0 only in DEBUG mode (container/development)
    # Otherwise bind to 127.0.0.1 for local security
    host = "0.0.0.0" if settings.DEBUG else "127.0.0.1"

    uvicorn.run(
        "portal_messaging.main:app",
        host=host,
        port=8000,
        reload=settings.DEBUG,
    )
