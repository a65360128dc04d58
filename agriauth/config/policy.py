"""
Policy document: role hierarchy and permission catalog as data.

The built-in defaults are the AgriLink marketplace tables. A deployment can
replace them with a YAML file of the same shape::

    roles:
      admin: [produce_manager, farmer_support]
      produce_manager: []
    permissions:
      product:approve: [admin, produce_manager]
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from agriauth.core.errors import ConfigurationFault

logger = logging.getLogger(__name__)


STAFF_ROLES = [
    "produce_manager",
    "logistics_coordinator",
    "farmer_support",
    "communication_manager",
    "analytics_manager",
    "pricing_manager",
]

DEFAULT_ROLE_HIERARCHY: Dict[str, List[str]] = {
    "admin": list(STAFF_ROLES),
    **{role: [] for role in STAFF_ROLES},
    "farmer": [],
    "buyer": [],
}

DEFAULT_PERMISSIONS: Dict[str, List[str]] = {
    # User management
    "user:read": ["admin", "farmer_support"],
    "user:write": ["admin"],
    "user:delete": ["admin"],
    "farmer:approve": ["admin", "farmer_support"],
    "farmer:suspend": ["admin"],
    # Product management
    "product:read": ["admin", "produce_manager"],
    "product:write": ["admin", "produce_manager"],
    "product:delete": ["admin"],
    "product:approve": ["admin", "produce_manager"],
    "product:suspend": ["admin", "produce_manager"],
    # Order management
    "order:read": ["admin", "logistics_coordinator"],
    "order:write": ["admin", "logistics_coordinator"],
    "order:delete": ["admin"],
    # Pricing
    "pricing:read": ["admin", "pricing_manager"],
    "pricing:write": ["admin", "pricing_manager"],
    # Analytics
    "analytics:read": ["admin", "analytics_manager"],
    "analytics:export": ["admin", "analytics_manager"],
    # Communication
    "announcement:read": ["admin", "communication_manager"],
    "announcement:write": ["admin", "communication_manager"],
    "announcement:delete": ["admin"],
    "announcement:approve": ["admin"],
    # System
    "system:monitor": ["admin"],
    "system:configure": ["admin"],
    "system:backup": ["admin"],
}


class PolicyDocument(BaseModel):
    """Declarative policy: ``{parent: [children]}`` and ``{permission: [roles]}``."""
    roles: Dict[str, List[str]] = Field(default_factory=dict)
    permissions: Dict[str, List[str]] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "PolicyDocument":
        return cls(roles=DEFAULT_ROLE_HIERARCHY, permissions=DEFAULT_PERMISSIONS)


def load_policy_document(path: Union[str, Path]) -> PolicyDocument:
    """Read and validate a policy YAML file.

    Raises:
        ConfigurationFault: If the file is missing, unparsable or malformed.
    """
    policy_path = Path(path)
    try:
        with open(policy_path, "r") as file:
            data = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationFault(f"Cannot read policy file {policy_path}: {e}") from e

    try:
        document = PolicyDocument(**data)
    except (TypeError, ValidationError) as e:
        raise ConfigurationFault(f"Invalid policy file {policy_path}: {e}") from e

    logger.debug(
        "Loaded policy document",
        extra={"path": str(policy_path), "roles": len(document.roles),
               "permissions": len(document.permissions)},
    )
    return document
