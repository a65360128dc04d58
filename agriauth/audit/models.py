"""
Audit trail data models.

AuditEntry is the immutable record of a completed privileged action. The set
of action kinds is closed: every call site picks an AuditAction member, so a
typo is a validation error instead of a silently new kind.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuditAction(str, Enum):
    """Privileged action kinds recorded by the marketplace."""
    FARMER_APPROVAL = "farmer_approval"
    FARMER_REJECTION = "farmer_rejection"
    FARMER_SUSPENSION = "farmer_suspension"
    FARMER_REACTIVATION = "farmer_reactivation"
    PRODUCT_APPROVAL = "product_approval"
    PRODUCT_SUSPENSION = "product_suspension"
    QUALITY_FLAG = "quality_flag"
    ORDER_STATUS_UPDATE = "order_status_update"
    DISPUTE_RESOLUTION = "dispute_resolution"
    ANNOUNCEMENT_CREATED = "announcement_created"
    ANNOUNCEMENT_UPDATED = "announcement_updated"
    ANNOUNCEMENT_DELETED = "announcement_deleted"
    ANNOUNCEMENT_APPROVED = "announcement_approved"
    USER_CONTACTED = "user_contacted"
    SYSTEM_MAINTENANCE = "system_maintenance"
    POLICY_RELOAD = "policy_reload"


# Kinds surfaced in the admin notification feed
NOTIFICATION_ACTIONS = (
    AuditAction.QUALITY_FLAG,
    AuditAction.PRODUCT_SUSPENSION,
    AuditAction.FARMER_SUSPENSION,
    AuditAction.ORDER_STATUS_UPDATE,
    AuditAction.DISPUTE_RESOLUTION,
    AuditAction.SYSTEM_MAINTENANCE,
)


class AuditTargetType(str, Enum):
    """Kind of entity an action was applied to."""
    USER = "user"
    PRODUCT = "product"
    ORDER = "order"
    ANNOUNCEMENT = "announcement"
    DISPUTE = "dispute"
    SYSTEM = "system"
    POLICY = "policy"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ActionRecord(BaseModel):
    """What a call site reports after a privileged mutation committed."""
    model_config = ConfigDict(frozen=True)

    actor_id: str = Field(..., min_length=1)
    actor_role: str = Field(..., min_length=1)
    action: AuditAction
    target_type: AuditTargetType
    target_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "unknown"
    user_agent: str = ""
    location: Optional[str] = None
    status: AuditStatus = AuditStatus.SUCCESS

    @field_validator("target_id", mode="before")
    @classmethod
    def stringify_target(cls, v):
        if v is None:
            return v
        return str(v)


def _new_entry_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEntry(ActionRecord):
    """Stored, immutable audit record with server-assigned id and timestamp."""
    id: str = Field(default_factory=_new_entry_id)
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_record(cls, record: ActionRecord) -> "AuditEntry":
        return cls(**record.model_dump())


class AuditQuery(BaseModel):
    """Operator query over the audit trail. Results are most-recent-first."""
    actions: Optional[List[AuditAction]] = None
    actor_id: Optional[str] = None
    target_type: Optional[AuditTargetType] = None
    status: Optional[AuditStatus] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)

    @field_validator("since", "until")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def matches(self, entry: AuditEntry) -> bool:
        if self.actions and entry.action not in self.actions:
            return False
        if self.actor_id and entry.actor_id != self.actor_id:
            return False
        if self.target_type and entry.target_type != self.target_type:
            return False
        if self.status and entry.status != self.status:
            return False
        if self.since and entry.timestamp < self.since:
            return False
        if self.until and entry.timestamp > self.until:
            return False
        return True


class AuditPage(BaseModel):
    """One page of query results."""
    entries: List[AuditEntry]
    total: int
    page: int
    limit: int
