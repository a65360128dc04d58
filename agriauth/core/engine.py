"""
Authorization engine.

Combines a RoleGraph and a PermissionCatalog to answer two questions:

- does role R satisfy a fixed set of acceptable roles?
- does role R hold permission P?

Both go through the same closure lookup. Semantics are pure allow-list,
deny-by-default: there are no deny rules, only absence from an allowed set.
The engine does no I/O and holds no mutable state, so a loaded engine can be
evaluated concurrently without locking.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from agriauth.core.errors import ConfigurationFault, MissingPermissionError
from agriauth.core.permissions import PermissionCatalog
from agriauth.core.roles import RoleGraph


@dataclass(frozen=True)
class RoleRequirement:
    """Any one of ``roles`` is acceptable."""
    roles: Tuple[str, ...]

    @classmethod
    def of(cls, *roles: str) -> "RoleRequirement":
        ordered: List[str] = []
        for role in roles:
            if role not in ordered:
                ordered.append(role)
        return cls(tuple(ordered))

    def describe(self) -> List[str]:
        return list(self.roles)


@dataclass(frozen=True)
class PermissionRequirement:
    """The named permission is required."""
    permission: str

    def describe(self) -> List[str]:
        return [self.permission]


Requirement = Union[RoleRequirement, PermissionRequirement]


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of a single authorization check. Never persisted."""
    allowed: bool
    requirement: Requirement
    actor_role: str
    matched_role: Optional[str] = None
    fault: Optional[ConfigurationFault] = None

    @property
    def is_fault(self) -> bool:
        return self.fault is not None


class AuthorizationEngine:
    """Answers role and permission queries against one policy snapshot."""

    def __init__(self, graph: RoleGraph, catalog: PermissionCatalog):
        self.graph = graph
        self.catalog = catalog

    def satisfies_any_role(self, actor_role: str, required_roles: Iterable[str]) -> bool:
        """True iff ``required_roles`` intersects the closure of ``actor_role``."""
        return self._first_match(actor_role, required_roles) is not None

    def has_permission(self, actor_role: str, permission: str) -> AuthorizationDecision:
        requirement = PermissionRequirement(permission)
        try:
            entitled = self.catalog.ordered_roles_for(permission)
        except MissingPermissionError as exc:
            return AuthorizationDecision(
                allowed=False,
                requirement=requirement,
                actor_role=actor_role,
                fault=exc,
            )
        return self._decide(actor_role, entitled, requirement)

    def decide(self, actor_role: str, requirement: Requirement) -> AuthorizationDecision:
        if isinstance(requirement, PermissionRequirement):
            return self.has_permission(actor_role, requirement.permission)
        return self._decide(actor_role, requirement.roles, requirement)

    def effective_permissions(self, actor_role: str) -> List[str]:
        """Permission keys the role holds, sorted."""
        closure = self.graph.closure(actor_role)
        return sorted(
            key for key in self.catalog.keys()
            if self.catalog.roles_allowed_for(key) & closure
        )

    def _decide(self, actor_role: str, roles: Iterable[str],
                requirement: Requirement) -> AuthorizationDecision:
        matched = self._first_match(actor_role, roles)
        return AuthorizationDecision(
            allowed=matched is not None,
            requirement=requirement,
            actor_role=actor_role,
            matched_role=matched,
        )

    def _first_match(self, actor_role: str, roles: Iterable[str]) -> Optional[str]:
        closure = self.graph.closure(actor_role)
        for role in roles:
            if role in closure:
                return role
        return None
