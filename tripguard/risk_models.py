"""Records and summaries used by the risk module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class RiskEvent:
    """Something a user did that may count against them."""

    user_id: str
    event_type: str
    description: str = ""
    severity: str = "low"
    metadata: Any = field(default_factory=dict)
    id: str = ""
    created_at: datetime | None = None


@dataclass
class RiskScore:
    """A computed risk score and the counts it came from."""

    user_id: str
    score: float
    factors: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    computed_at: datetime | None = None


@dataclass
class ThrottleAction:
    """A temporary block on one action type (or "*" for every action)."""

    user_id: str
    action_type: str
    reason: str
    expires_at: datetime | None = None
    active: bool = True
    created_by: str = ""
    id: str = ""
    created_at: datetime | None = None


@dataclass
class AdminApproval:
    """A request waiting for an administrator's decision."""

    action_type: str
    reference_type: str
    reference_id: str
    requested_by: str
    user_id: str | None = None
    status: str = "pending"
    resolved_by: str | None = None
    resolution_notes: str = ""
    id: str = ""
    created_at: datetime | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "actionType": self.action_type,
            "referenceType": self.reference_type,
            "referenceId": self.reference_id,
            "status": self.status,
            "requestedBy": self.requested_by,
            "resolvedBy": self.resolved_by,
            "resolutionNotes": self.resolution_notes,
            "createdAt": _iso(self.created_at),
            "resolvedAt": _iso(self.resolved_at),
        }


@dataclass
class BlacklistRecord:
    """An account ban; active until lifted."""

    user_id: str
    reason: str
    blacklisted_by: str
    active: bool = True
    id: str = ""
    created_at: datetime | None = None
    lifted_at: datetime | None = None


@dataclass
class RiskDecision:
    """The outcome of evaluating whether an action may proceed."""

    allowed: bool
    require_approval: bool = False
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"allowed": self.allowed}
        if self.require_approval:
            data["requireApproval"] = True
        data["reason"] = self.reason
        return data


@dataclass
class ThrottleSummary:
    """A throttle as shown in a risk summary."""

    id: str
    action_type: str
    reason: str
    expires_at: datetime | None
    active: bool
    created_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "actionType": self.action_type,
            "reason": self.reason,
            "expiresAt": _iso(self.expires_at),
            "active": self.active,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class RiskEventSummary:
    """A risk event as shown in a risk summary."""

    id: str
    event_type: str
    description: str
    severity: str
    created_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type,
            "description": self.description,
            "severity": self.severity,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class RiskSummary:
    """Everything an administrator sees about one user's risk."""

    user_id: str
    score: float = 0.0
    is_blacklisted: bool = False
    active_throttles: list[ThrottleSummary] = field(default_factory=list)
    recent_events: list[RiskEventSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "score": self.score,
            "isBlacklisted": self.is_blacklisted,
            "activeThrottles": [t.to_dict() for t in self.active_throttles],
            "recentEvents": [e.to_dict() for e in self.recent_events],
        }


@dataclass
class ResolveApprovalRequest:
    """An administrator's decision on a pending approval."""

    status: str
    notes: str = ""


@dataclass
class BlacklistRequest:
    """The reason given for blacklisting a user."""

    reason: str = ""