"""
Health check endpoint.

Reports liveness together with the policy snapshot currently enforced, so an
operator can confirm that a reload took effect.
"""

import os
import time
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from agriauth import __version__


class HealthStatus(BaseModel):
    """Health status response model."""
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: float
    environment: str
    policy: Dict[str, Any]
    audit: Dict[str, Any]


# Track service start time for uptime calculation
_start_time = time.time()

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "",
    response_model=HealthStatus,
    summary="Basic health check",
    description="Returns service status and the active policy version"
)
async def health_check(request: Request) -> HealthStatus:
    snapshot = request.app.state.policy_store.snapshot()
    recorder = request.app.state.audit_recorder

    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        uptime_seconds=time.time() - _start_time,
        environment=os.getenv("ENVIRONMENT", "development"),
        policy={
            "version": snapshot.version,
            "loaded_at": snapshot.loaded_at.isoformat(),
            "roles": len(snapshot.graph.roles),
            "permissions": len(snapshot.catalog),
        },
        audit={
            "storage": type(recorder.storage).__name__,
            "pending_writes": recorder.pending,
        },
    )
