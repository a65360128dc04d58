"""
Policy endpoints.

- the caller's own role, closure and effective permissions
- the role hierarchy and the permission catalog (operators)
- hot reload of the policy file (operators)

A reload is itself a privileged action and is recorded in the audit trail
once the new snapshot is live.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from agriauth.audit.models import AuditAction, AuditStatus, AuditTargetType
from agriauth.core.actor import Actor
from agriauth.core.errors import ConfigurationFault
from agriauth.middleware.gate import require_actor, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/policy", tags=["Policy"])


class ActorAccessResponse(BaseModel):
    """What the calling actor may do. Limited to the actor's own role."""
    actor_id: str
    role: str
    inherited_roles: List[str]
    permissions: List[str]
    policy_version: int


class RoleHierarchyResponse(BaseModel):
    roles: Dict[str, Any]
    total_roles: int
    policy_version: int


class PermissionCatalogResponse(BaseModel):
    permissions: Dict[str, List[str]]
    total_permissions: int
    policy_version: int


class ReloadResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None


@router.get("/me", response_model=ActorAccessResponse)
async def get_own_access(request: Request, actor: Actor = Depends(require_actor)):
    """Return the caller's role closure and effective permissions."""
    snapshot = request.app.state.policy_store.snapshot()
    return ActorAccessResponse(
        actor_id=actor.id,
        role=actor.role,
        inherited_roles=sorted(snapshot.graph.closure(actor.role)),
        permissions=snapshot.engine.effective_permissions(actor.role),
        policy_version=snapshot.version,
    )


@router.get("/roles", response_model=RoleHierarchyResponse)
async def get_role_hierarchy(request: Request,
                             actor: Actor = Depends(require_permission("system:monitor"))):
    """Full role hierarchy with precomputed closures."""
    snapshot = request.app.state.policy_store.snapshot()
    roles = snapshot.graph.to_dict()
    return RoleHierarchyResponse(roles=roles, total_roles=len(roles),
                                 policy_version=snapshot.version)


@router.get("/permissions", response_model=PermissionCatalogResponse)
async def get_permission_catalog(request: Request,
                                 actor: Actor = Depends(require_permission("system:monitor"))):
    snapshot = request.app.state.policy_store.snapshot()
    permissions = snapshot.catalog.to_dict()
    return PermissionCatalogResponse(permissions=permissions,
                                     total_permissions=len(permissions),
                                     policy_version=snapshot.version)


@router.post("/reload", response_model=ReloadResponse)
async def reload_policy(request: Request,
                        actor: Actor = Depends(require_permission("system:configure"))):
    """Rebuild the policy from its file and swap it in.

    On failure the current policy stays in force.
    """
    config = request.app.state.config
    if not config.policy.reload_enabled:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"success": False, "message": "Policy reload is disabled"},
        )

    store = request.app.state.policy_store
    recorder = request.app.state.audit_recorder
    previous = store.snapshot()
    path = config.resolve_path(config.policy.path)

    try:
        # Parsing and closure building stay off the event loop
        snapshot = await asyncio.to_thread(store.reload_from_file, path)
    except ConfigurationFault as e:
        logger.error(
            "Policy reload failed",
            extra={"event": "authz_configuration_fault", "error": str(e),
                   "actor_id": actor.id, "policy_version": previous.version},
        )
        await recorder.record_action_from_request(
            request, actor, AuditAction.POLICY_RELOAD, AuditTargetType.POLICY,
            details={"error": str(e), "version": previous.version},
            status=AuditStatus.FAILURE,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Policy reload failed"},
        )

    await recorder.record_action_from_request(
        request, actor, AuditAction.POLICY_RELOAD, AuditTargetType.POLICY,
        target_id=snapshot.version,
        details={
            "previous_version": previous.version,
            "version": snapshot.version,
            "source": snapshot.source,
        },
    )

    return ReloadResponse(
        success=True,
        message="Policy reloaded",
        data={
            "version": snapshot.version,
            "roles": len(snapshot.graph.roles),
            "permissions": len(snapshot.catalog),
        },
    )
