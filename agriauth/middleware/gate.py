"""
Gate: the enforcement point in front of privileged operations.

A guard's requirement (a fixed role set or a single permission key) is bound
when the guard is declared, never derived from the request. At request time
the Gate:

1. takes the Actor resolved by the authentication collaborator; none means
   Unauthenticated (401),
2. asks the AuthorizationEngine of the current policy snapshot,
3. refuses with Unauthorized (403) naming the requirement and the actor's own
   role, or with PolicyFault (500) when the permission key is not in the
   catalog; otherwise lets the operation run unmodified.

Usage with FastAPI::

    @router.post("/farmers/{farmer_id}/approve")
    async def approve(farmer_id: str, actor: Actor = Depends(require_permission("farmer:approve"))):
        ...

Usage around plain callables::

    @gate.guard(RoleRequirement.of("admin"))
    async def suspend_farmer(farmer_id, *, actor):
        ...
"""

import inspect
import logging
from functools import wraps
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from agriauth.config.logging import StructuredLogger
from agriauth.core.actor import Actor
from agriauth.core.engine import (
    AuthorizationDecision,
    PermissionRequirement,
    Requirement,
    RoleRequirement,
)
from agriauth.core.errors import (
    AdminRequired,
    GateError,
    PolicyFault,
    Unauthenticated,
    Unauthorized,
)
from agriauth.core.policy_store import PolicyStore
from agriauth.middleware.actor import get_request_actor

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class Gate:
    """Applies authorization decisions from a PolicyStore."""

    def __init__(self, store: PolicyStore):
        self.store = store
        self._log = StructuredLogger("agriauth.gate")
        # Requirements bound through guard(), checked by verify_bindings
        self.guarded: List[Requirement] = []

    def check(self, actor: Optional[Actor], requirement: Requirement,
              **context) -> AuthorizationDecision:
        """Authorize ``actor`` against ``requirement``.

        Raises:
            Unauthenticated: No actor.
            PolicyFault: The permission key is not declared.
            Unauthorized: The actor's role does not satisfy the requirement.
        """
        if actor is None:
            raise Unauthenticated()

        # One snapshot for the whole decision, even if a reload lands meanwhile
        snapshot = self.store.snapshot()
        decision = snapshot.engine.decide(actor.role, requirement)

        if decision.is_fault:
            self._log.log_configuration_fault(
                decision.fault,
                actor_id=actor.id,
                actor_role=actor.role,
                policy_version=snapshot.version,
                **context
            )
            raise PolicyFault(decision.fault)

        self._log.log_decision(
            actor_id=actor.id,
            actor_role=actor.role,
            required=requirement.describe(),
            allowed=decision.allowed,
            matched_role=decision.matched_role,
            policy_version=snapshot.version,
            **context
        )

        if not decision.allowed:
            raise Unauthorized(requirement.describe(), actor.role)

        return decision

    def check_admin(self, actor: Optional[Actor], **context) -> None:
        """Allow only an actor whose role is exactly ``admin``.

        No inheritance applies: a role that inherits ``admin`` is still refused.
        """
        if actor is None:
            raise Unauthenticated()

        allowed = actor.role == ADMIN_ROLE
        self._log.log_decision(
            actor_id=actor.id,
            actor_role=actor.role,
            required=[ADMIN_ROLE],
            allowed=allowed,
            matched_role=ADMIN_ROLE if allowed else None,
            policy_version=self.store.snapshot().version,
            **context
        )

        if not allowed:
            raise AdminRequired(actor.role)

    def guard(self, requirement: Requirement) -> Callable:
        """Decorator enforcing ``requirement`` on a callable.

        The wrapped callable receives its actor as the ``actor`` keyword
        argument; the Gate does not alter any argument.
        """
        self.guarded.append(requirement)

        def decorator(func: Callable) -> Callable:
            if inspect.iscoroutinefunction(func):
                @wraps(func)
                async def async_wrapper(*args, **kwargs):
                    self.check(kwargs.get("actor"), requirement, operation=func.__name__)
                    return await func(*args, **kwargs)
                return async_wrapper

            @wraps(func)
            def wrapper(*args, **kwargs):
                self.check(kwargs.get("actor"), requirement, operation=func.__name__)
                return func(*args, **kwargs)
            return wrapper

        return decorator


# FastAPI dependencies

def get_gate(request: Request) -> Gate:
    return request.app.state.gate


def _dependency(requirement: Requirement) -> Callable:
    async def check_requirement(request: Request) -> Actor:
        actor = get_request_actor(request)
        get_gate(request).check(actor, requirement, path=request.url.path)
        return actor
    check_requirement.requirement = requirement
    return check_requirement


def require_role(*roles: str) -> Callable:
    """Dependency factory: the actor must satisfy any one of ``roles``."""
    requirement = RoleRequirement.of(*roles)
    if not requirement.roles:
        raise ValueError("require_role needs at least one role")
    return _dependency(requirement)


def require_permission(permission: str) -> Callable:
    """Dependency factory: the actor must hold ``permission``."""
    return _dependency(PermissionRequirement(permission))


def require_admin() -> Callable:
    """Dependency factory: the actor's role must be exactly ``admin``."""
    async def check_admin(request: Request) -> Actor:
        actor = get_request_actor(request)
        get_gate(request).check_admin(actor, path=request.url.path)
        return actor
    check_admin.requirement = RoleRequirement.of(ADMIN_ROLE)
    return check_admin


async def require_actor(request: Request) -> Actor:
    """Dependency: any authenticated actor."""
    actor = get_request_actor(request)
    if actor is None:
        raise Unauthenticated()
    return actor


def route_requirements(app: FastAPI) -> List[Requirement]:
    """Collect the requirements bound by the guards on ``app``'s routes."""
    found = []
    pending = [route.dependant for route in app.routes if isinstance(route, APIRoute)]
    while pending:
        dependant = pending.pop()
        requirement = getattr(dependant.call, "requirement", None)
        if requirement is not None:
            found.append(requirement)
        pending.extend(dependant.dependencies)
    return found


def verify_bindings(app: FastAPI) -> Dict[str, List[str]]:
    """Report guards on ``app`` the live policy cannot resolve.

    Covers route dependencies and callables wrapped by the app's Gate.
    Unknown permission keys are configuration faults: the guarded operations
    will refuse every request. Unknown roles only ever match an actor
    carrying exactly that role string.
    """
    gate: Gate = app.state.gate
    requirements = route_requirements(app) + list(gate.guarded)

    roles = set()
    permissions = set()
    for requirement in requirements:
        if isinstance(requirement, PermissionRequirement):
            permissions.add(requirement.permission)
        elif isinstance(requirement, RoleRequirement):
            roles.update(requirement.roles)

    snapshot = gate.store.snapshot()
    missing_permissions = gate.store.verify_permissions(permissions)
    undeclared_roles = sorted(role for role in roles if role not in snapshot.graph)

    for permission in missing_permissions:
        logger.error(
            "Guard references undefined permission",
            extra={"event": "authz_configuration_fault", "permission": permission,
                   "policy_version": snapshot.version},
        )
    for role in undeclared_roles:
        logger.warning(
            "Guard references role missing from hierarchy",
            extra={"event": "authz_undeclared_role", "role": role,
                   "policy_version": snapshot.version},
        )

    return {"missing_permissions": missing_permissions, "undeclared_roles": undeclared_roles}


async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    """Render a refusal in the documented response shape."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GateError, gate_error_handler)
