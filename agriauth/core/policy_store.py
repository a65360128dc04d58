"""
Swappable policy store.

A PolicyStore owns the live policy snapshot (role graph, permission catalog
and the engine built from them). Readers grab the current snapshot reference
without locking and use it for the whole decision. A reload builds a complete
new snapshot off to the side and replaces the reference only after it
validated, so no decision ever observes a partially built policy and no
decision waits on a reload.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from agriauth.config.policy import PolicyDocument, load_policy_document
from agriauth.core.engine import AuthorizationEngine
from agriauth.core.permissions import PermissionCatalog
from agriauth.core.roles import RoleGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
    """One immutable, validated version of the policy."""
    engine: AuthorizationEngine
    version: int = 1
    source: Optional[str] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def graph(self) -> RoleGraph:
        return self.engine.graph

    @property
    def catalog(self) -> PermissionCatalog:
        return self.engine.catalog


def build_snapshot(document: PolicyDocument, version: int = 1,
                   source: Optional[str] = None) -> PolicySnapshot:
    """Validate a policy document into a snapshot.

    Raises:
        ConfigurationFault: On a cyclic hierarchy or an invalid catalog.
    """
    graph = RoleGraph.from_mapping(document.roles)
    catalog = PermissionCatalog.build(document.permissions, graph)
    return PolicySnapshot(
        engine=AuthorizationEngine(graph, catalog),
        version=version,
        source=source,
    )


class PolicyStore:
    """Holds the live policy snapshot and swaps it atomically on reload."""

    def __init__(self, snapshot: PolicySnapshot):
        self._snapshot = snapshot
        self._reload_lock = threading.Lock()

    @classmethod
    def from_policy(cls, document: Optional[PolicyDocument] = None) -> "PolicyStore":
        document = document or PolicyDocument.default()
        return cls(build_snapshot(document))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PolicyStore":
        document = load_policy_document(path)
        return cls(build_snapshot(document, source=str(path)))

    def snapshot(self) -> PolicySnapshot:
        """Current snapshot. Callers keep the returned reference for a whole decision."""
        return self._snapshot

    @property
    def engine(self) -> AuthorizationEngine:
        return self._snapshot.engine

    def reload(self, document: PolicyDocument, source: Optional[str] = None) -> PolicySnapshot:
        """Replace the live policy.

        The new snapshot is fully built before the swap. If building fails the
        previous snapshot stays live and the ConfigurationFault propagates.
        """
        with self._reload_lock:
            current = self._snapshot
            try:
                candidate = build_snapshot(document, version=current.version + 1,
                                           source=source or current.source)
            except Exception:
                logger.error(
                    "Policy reload rejected; keeping current snapshot",
                    extra={"version": current.version, "source": source},
                )
                raise

            self._snapshot = candidate

        logger.info(
            "Policy reloaded",
            extra={
                "version": candidate.version,
                "roles": len(candidate.graph.roles),
                "permissions": len(candidate.catalog),
                "source": candidate.source,
            },
        )
        return candidate

    def reload_from_file(self, path: Optional[Union[str, Path]] = None) -> PolicySnapshot:
        """Reload from ``path``, or from the file the current snapshot came from."""
        target = path or self._snapshot.source
        if target is None:
            document = PolicyDocument.default()
            return self.reload(document)
        return self.reload(load_policy_document(target), source=str(target))

    def verify_permissions(self, keys: Iterable[str]) -> List[str]:
        """Keys absent from the live catalog, sorted."""
        catalog = self._snapshot.catalog
        return sorted({key for key in keys if key not in catalog})
