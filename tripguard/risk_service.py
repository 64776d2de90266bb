"""Risk operations offered to administrators and other modules."""

from __future__ import annotations

import json
import logging
import sqlite3

from .errors import BadRequestError, InternalError
from .risk_engine import RiskEngine
from .risk_models import (
    AdminApproval,
    RiskDecision,
    RiskEvent,
    RiskEventSummary,
    RiskSummary,
    ThrottleSummary,
)
from .risk_repository import RiskRepository

logger = logging.getLogger(__name__)

_RECENT_EVENT_LIMIT = 20
_RESOLUTION_STATUSES = ("approved", "rejected")


class RiskService:
    """Summaries, blacklisting and approval handling on top of the repository."""

    def __init__(self, repo: RiskRepository) -> None:
        self._repo = repo
        self._engine = RiskEngine(repo)

    def get_risk_summary(self, user_id: str) -> RiskSummary:
        """Gather blacklist state, latest score, live throttles and recent events."""
        summary = RiskSummary(user_id=user_id)

        try:
            summary.is_blacklisted = self._repo.get_blacklist(user_id) is not None
        except sqlite3.Error as exc:
            raise InternalError("failed to check blacklist", exc) from exc

        try:
            score = self._repo.get_risk_score(user_id)
        except sqlite3.Error as exc:
            raise InternalError("failed to get risk score", exc) from exc
        if score is not None:
            summary.score = score.score

        try:
            throttles = self._repo.get_active_throttles(user_id)
        except sqlite3.Error as exc:
            raise InternalError("failed to get throttles", exc) from exc
        summary.active_throttles = [
            ThrottleSummary(
                id=t.id,
                action_type=t.action_type,
                reason=t.reason,
                expires_at=t.expires_at,
                active=t.active,
                created_at=t.created_at,
            )
            for t in throttles
        ]

        try:
            events = self._repo.get_recent_events(user_id, _RECENT_EVENT_LIMIT)
        except sqlite3.Error:
            logger.exception("failed to get recent events")
            events = []
        summary.recent_events = [
            RiskEventSummary(
                id=e.id,
                event_type=e.event_type,
                description=e.description,
                severity=e.severity,
                created_at=e.created_at,
            )
            for e in events
        ]
        return summary

    def evaluate_action(self, user_id: str, action_type: str) -> RiskDecision:
        return self._engine.evaluate_action(user_id, action_type)

    def record_event(
        self, user_id: str, event_type: str, description: str, severity: str
    ) -> str:
        """Store an event with the given severity and return its id."""
        return self._repo.create_risk_event(
            RiskEvent(
                user_id=user_id,
                event_type=event_type,
                description=description,
                severity=severity,
                metadata=json.loads(json.dumps({"severity": severity})),
            )
        )

    def blacklist_user(self, target_id: str, admin_id: str, reason: str) -> str:
        if not reason:
            raise BadRequestError("reason is required")
        return self._repo.blacklist_user(target_id, admin_id, reason)

    def unblacklist_user(self, target_id: str, admin_id: str) -> None:
        self._repo.unblacklist_user(target_id)

    def get_pending_approvals(self) -> list[AdminApproval]:
        try:
            return self._repo.get_pending_approvals()
        except sqlite3.Error as exc:
            raise InternalError("failed to get pending approvals", exc) from exc

    def resolve_approval(
        self, approval_id: str, admin_id: str, status: str, notes: str
    ) -> None:
        if status not in _RESOLUTION_STATUSES:
            raise BadRequestError("status must be 'approved' or 'rejected'")
        self._repo.resolve_approval(approval_id, admin_id, status, notes)