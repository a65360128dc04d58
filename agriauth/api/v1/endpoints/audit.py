"""
Audit trail query endpoints for operators.

The trail is read-only over HTTP; entries are only ever created by business
call sites through the AuditRecorder.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from agriauth.audit.models import AuditAction, AuditPage, AuditStatus, AuditTargetType
from agriauth.core.actor import Actor
from agriauth.middleware.gate import require_permission, require_role

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/actions", response_model=AuditPage)
async def list_actions(
    request: Request,
    action: Optional[List[AuditAction]] = Query(None, description="Action kinds to include"),
    actor_id: Optional[str] = Query(None, description="Only entries recorded for this actor"),
    target_type: Optional[AuditTargetType] = None,
    status: Optional[AuditStatus] = None,
    since: Optional[datetime] = Query(None, description="Earliest timestamp, inclusive"),
    until: Optional[datetime] = Query(None, description="Latest timestamp, inclusive"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_permission("system:monitor")),
) -> AuditPage:
    """Filter the audit trail, most recent first."""
    return await request.app.state.audit_recorder.query(
        actions=action,
        actor_id=actor_id,
        target_type=target_type,
        status=status,
        since=since,
        until=until,
        page=page,
        limit=limit,
    )


@router.get("/notifications", response_model=AuditPage)
async def list_notifications(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_role("admin")),
) -> AuditPage:
    """Recent actions admins are notified about (suspensions, quality flags, disputes...)."""
    return await request.app.state.audit_recorder.notifications(page=page, limit=limit)
