"""
API v1 Router Configuration.

Organizes the operator-facing endpoints:
- Health
- Policy inspection and reload
- Audit trail queries

Everything except health is guarded by the authorization Gate.
"""

from fastapi import APIRouter

from agriauth.api.v1.endpoints import audit, health, policy

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    health.router,
    tags=["Health"]
)

api_router.include_router(
    policy.router,
    tags=["Policy"]
)

api_router.include_router(
    audit.router,
    tags=["Audit"]
)
