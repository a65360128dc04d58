"""
Error taxonomy for the authorization-and-audit engine.

Two families of failures, so that misconfiguration never looks like an
ordinary denial:

- ConfigurationFault: the policy itself is broken (cyclic role graph,
  undeclared permission key, malformed policy document).
- GateError: a request was refused at an enforcement point. Each subclass
  knows its HTTP status and renders the documented response payload.

AuditWriteFailure is raised by audit storage backends only. The recorder
catches it; it never reaches the request path.
"""

from typing import Any, Dict, List, Optional, Sequence


class AuthzError(Exception):
    """Base class for all engine errors."""


class ConfigurationFault(AuthzError):
    """The loaded policy cannot be used as-is."""


class RoleCycleError(ConfigurationFault):
    """Role inheritance edges form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Role hierarchy contains a cycle: {' -> '.join(self.cycle)}")


class MissingPermissionError(ConfigurationFault):
    """A permission key is not declared in the catalog."""

    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(f"Permission '{permission}' is not defined in the catalog")


class AuditWriteFailure(AuthzError):
    """An audit entry could not be written to storage."""


class GateError(AuthzError):
    """A request refused at an enforcement point."""

    status_code: int = 500
    message: str = "Request refused"

    def to_response(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class Unauthenticated(GateError):
    """No actor was resolved for the request."""

    status_code = 401
    message = "Authentication required"

    def __init__(self):
        super().__init__(self.message)


class Unauthorized(GateError):
    """An actor is present but its role does not satisfy the requirement."""

    status_code = 403
    message = "Access denied: insufficient permissions"

    def __init__(self, required: List[str], current: str):
        self.required = list(required)
        self.current = current
        super().__init__(f"{self.message} (required={self.required}, current={current})")

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "required": self.required,
            "current": self.current,
        }


class AdminRequired(Unauthorized):
    """The operation is reserved to the ``admin`` role itself."""

    message = "Access denied: admin privileges required"

    def __init__(self, current: str):
        super().__init__(["admin"], current)


class PolicyFault(GateError):
    """A guard references a permission the catalog does not declare.

    The caller only ever sees a generic server-fault payload; the offending
    key goes to the operational log.
    """

    status_code = 500
    message = "Permission not defined"

    def __init__(self, fault: Optional[ConfigurationFault] = None):
        self.fault = fault
        super().__init__(self.message)
