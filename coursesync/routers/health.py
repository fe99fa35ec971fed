"""
Health Check Router

Liveness endpoints for load balancers plus the public reachability test a
remote node (or an operator) can hit before configuring a connection.
"""

from fastapi import APIRouter, Depends, Request
from coursesync.models.api import HealthCheckResponse
from coursesync.services.container import SyncServices, get_services
from coursesync.utils.rate_limit import TEST_ENDPOINT_LIMIT, limiter
import time
import os
from datetime import datetime

# Initialize router
router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check(services: SyncServices = Depends(get_services)):
    """
    Basic health check endpoint

    Returns application status, version, node mode and environment.
    """
    return HealthCheckResponse(
        status="healthy",
        version=os.getenv("APP_VERSION", "1.0.0"),
        environment=os.getenv("ENVIRONMENT", "development"),
        mode=services.settings.mode,
        timestamp=datetime.utcnow(),
        uptime=time.time() - _start_time,
    )


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """
    Kubernetes-style liveness probe
    """
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "pid": os.getpid()
    }


@router.get("/test", summary="REST Reachability Test")
@limiter.limit(TEST_ENDPOINT_LIMIT)
async def reachability_test(request: Request):
    """
    Unauthenticated check that the sync API is reachable.

    Limited to 10 requests per minute per remote address.
    """
    return {
        "status": "ok",
        "message": "Course sync REST API is working.",
        "timestamp": datetime.utcnow().isoformat(),
    }
