"""
Audit recorder.

Call sites invoke ``record_action`` only after a privileged mutation has
committed, so every stored entry describes something that actually happened.

Writing the entry is not transactional with the mutation: if storage fails or
times out, the failure is logged on the operational audit channel and
swallowed. The caller's result is never affected and the committed mutation is
never rolled back. A crash between commit and append loses that entry.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional, Set

from fastapi import Request

from agriauth.audit.models import (
    NOTIFICATION_ACTIONS,
    ActionRecord,
    AuditAction,
    AuditEntry,
    AuditPage,
    AuditQuery,
    AuditStatus,
    AuditTargetType,
)
from agriauth.audit.storage import AuditStorage
from agriauth.config.logging import AUDIT_OPS_LOGGER, StructuredLogger
from agriauth.core.actor import Actor
from agriauth.middleware.actor import get_client_ip, get_user_agent


class AuditRecorder:
    """Appends audit entries without ever failing the triggering operation."""

    def __init__(self, storage: AuditStorage, timeout_seconds: float = 5.0,
                 retry_attempts: int = 0):
        """
        Args:
            storage: Persistence backend.
            timeout_seconds: Upper bound for a single storage write.
            retry_attempts: Extra write attempts after the first failure.
        """
        self.storage = storage
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(0, retry_attempts)
        self._ops = StructuredLogger(AUDIT_OPS_LOGGER)
        self._pending: Set[asyncio.Task] = set()

    async def append(self, entry: AuditEntry) -> Optional[AuditEntry]:
        """Store ``entry``.

        Returns:
            The stored entry, or None if every attempt failed. Never raises
            on storage failure.
        """
        attempts = 1 + self.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self.storage.append(entry), self.timeout_seconds)
            except Exception as e:
                self._ops.log_audit_failure(
                    action=entry.action.value,
                    error=e,
                    attempt=attempt,
                    entry_id=entry.id,
                    actor_id=entry.actor_id,
                    target_type=entry.target_type.value,
                    target_id=entry.target_id,
                )
        return None

    async def record_action(
        self,
        actor: Actor,
        action: AuditAction,
        target_type: AuditTargetType,
        *,
        target_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: str = "unknown",
        user_agent: str = "",
        location: Optional[str] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
    ) -> Optional[AuditEntry]:
        """Record a completed privileged action."""
        entry = self.build_entry(
            actor, action, target_type,
            target_id=target_id, details=details, ip_address=ip_address,
            user_agent=user_agent, location=location, status=status,
        )
        return await self.append(entry)

    async def record_action_from_request(
        self,
        request: Request,
        actor: Actor,
        action: AuditAction,
        target_type: AuditTargetType,
        **kwargs,
    ) -> Optional[AuditEntry]:
        """``record_action`` with client address and user agent taken from ``request``."""
        return await self.record_action(
            actor, action, target_type,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            **kwargs,
        )

    def build_entry(
        self,
        actor: Actor,
        action: AuditAction,
        target_type: AuditTargetType,
        *,
        target_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: str = "unknown",
        user_agent: str = "",
        location: Optional[str] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
    ) -> AuditEntry:
        record = ActionRecord(
            actor_id=actor.id,
            actor_role=actor.role,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
            location=location if location is not None else actor.location,
            status=status,
        )
        return AuditEntry.from_record(record)

    def dispatch(self, entry: AuditEntry) -> asyncio.Task:
        """Append in the background without blocking the caller's response.

        Entries are independent of each other, so no ordering is kept
        between dispatched appends.
        """
        task = asyncio.get_running_loop().create_task(self.append(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every dispatched append to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def query(
        self,
        actions=None,
        actor_id: Optional[str] = None,
        target_type: Optional[AuditTargetType] = None,
        status: Optional[AuditStatus] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AuditPage:
        """Operator query; most recent entries first."""
        query = AuditQuery(
            actions=list(actions) if actions else None,
            actor_id=actor_id,
            target_type=target_type,
            status=status,
            since=since,
            until=until,
            page=page,
            limit=limit,
        )
        return await self.storage.query(query)

    async def notifications(self, page: int = 1, limit: int = 20) -> AuditPage:
        """Recent entries of the kinds admins are notified about."""
        return await self.query(actions=NOTIFICATION_ACTIONS, page=page, limit=limit)
