import os
import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint reporting build metadata and client readiness.

    Returns "initializing" until the lifespan has created the employment
    service client and the conversation registry.
    """
    registry = getattr(request.app.state, "registry", None)
    status = "healthy" if registry is not None else "initializing"

    return {
        "status": status,
        "timestamp": int(time.time()),
        "build_id": os.getenv("BUILD_ID", "unknown"),
        "active_viewers": len(registry) if registry is not None else 0,
    }


@router.get("/health/ready")
async def readiness_check():
    """
    Readiness probe that checks if the service is ready to handle requests.
    """
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """
    Liveness probe that checks if the service is running.
    """
    return {"status": "alive"}
