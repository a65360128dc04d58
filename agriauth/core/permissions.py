"""
Static permission catalog.

Maps each ``<domain>:<action>`` permission key to the roles directly entitled
to it. The catalog is closed: asking about a key it does not declare is a
configuration error, never an ordinary denial.
"""

import re
from typing import Dict, FrozenSet, Iterable, KeysView, List, Mapping, Tuple

from agriauth.core.errors import ConfigurationFault, MissingPermissionError
from agriauth.core.roles import RoleGraph

PERMISSION_KEY = re.compile(r"^[a-z][a-z0-9_]*:[a-z][a-z0-9_]*$")


class PermissionCatalog:
    """Closed map from permission key to directly entitled roles."""

    def __init__(self, grants: Dict[str, Tuple[str, ...]]):
        self._grants = grants
        self._allowed = {key: frozenset(roles) for key, roles in grants.items()}

    @classmethod
    def build(cls, grants: Mapping[str, Iterable[str]], graph: RoleGraph) -> "PermissionCatalog":
        """Validate grants against the role graph.

        Raises:
            ConfigurationFault: On a malformed key or a grant naming a role the
                graph does not declare.
        """
        validated: Dict[str, Tuple[str, ...]] = {}

        for key, roles in grants.items():
            if not PERMISSION_KEY.match(key):
                raise ConfigurationFault(
                    f"Permission key '{key}' must have the form <domain>:<action>"
                )

            ordered: List[str] = []
            for role in roles:
                if role not in graph:
                    raise ConfigurationFault(
                        f"Permission '{key}' grants undeclared role '{role}'"
                    )
                if role not in ordered:
                    ordered.append(role)

            validated[key] = tuple(ordered)

        return cls(validated)

    def roles_allowed_for(self, permission: str) -> FrozenSet[str]:
        """Roles directly entitled to ``permission``.

        Raises:
            MissingPermissionError: If the key is not declared.
        """
        try:
            return self._allowed[permission]
        except KeyError:
            raise MissingPermissionError(permission) from None

    def ordered_roles_for(self, permission: str) -> Tuple[str, ...]:
        """Entitled roles in declaration order."""
        try:
            return self._grants[permission]
        except KeyError:
            raise MissingPermissionError(permission) from None

    def __contains__(self, permission: str) -> bool:
        return permission in self._grants

    def __len__(self) -> int:
        return len(self._grants)

    def keys(self) -> KeysView[str]:
        return self._grants.keys()

    def to_dict(self) -> Dict[str, List[str]]:
        return {key: list(roles) for key, roles in sorted(self._grants.items())}
