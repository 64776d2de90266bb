"""Rules that decide whether a user's action may go ahead."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import Any

from .risk_models import AdminApproval, RiskDecision, RiskEvent, ThrottleAction
from .risk_repository import RiskRepository

logger = logging.getLogger(__name__)

_SEVERITIES = {
    "harassment_flag": "high",
    "cancellation": "medium",
    "rfq_creation": "low",
}

_CANCELLATION_WINDOW_HOURS = 24
_CANCELLATION_LIMIT = 8
_CANCELLATION_THROTTLE = timedelta(hours=6)

_RFQ_WINDOW_MINUTES = 10
_RFQ_LIMIT = 20
_RFQ_THROTTLE = timedelta(hours=1)

_HARASSMENT_LIMIT = 3
_HARASSMENT_THROTTLE = timedelta(hours=24)


def determine_severity(event_type: str) -> str:
    """Return the severity recorded for an event type; unknown types are low."""
    return _SEVERITIES.get(event_type, "low")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RiskEngine:
    """Applies blacklist, throttle and abuse-threshold rules to actions."""

    def __init__(self, repo: RiskRepository) -> None:
        self._repo = repo

    def _count_or_none(self, what: str, count, *args) -> int | None:
        """Run a counting query; a storage failure is logged and yields None."""
        try:
            return count(*args)
        except sqlite3.Error:
            logger.exception("failed to count %s", what)
            return None

    def _throttle(self, user_id: str, action_type: str, reason: str, duration: timedelta) -> None:
        with suppress(sqlite3.Error):
            self._repo.create_throttle(
                ThrottleAction(
                    user_id=user_id,
                    action_type=action_type,
                    reason=reason,
                    expires_at=_now() + duration,
                )
            )

    def evaluate_action(self, user_id: str, action_type: str) -> RiskDecision:
        """Decide whether the user may perform the action, throttling as a side effect.

        Storage errors while reading blacklists or throttles propagate.
        """
        record = self._repo.get_blacklist(user_id)
        if record is not None:
            return RiskDecision(
                allowed=False, reason="account is blacklisted: " + record.reason
            )

        if self._repo.find_throttle(user_id, action_type) is not None:
            return RiskDecision(allowed=False, reason="action is currently throttled")

        cancellations = self._count_or_none(
            "cancellations",
            self._repo.count_cancellations_in_window,
            user_id,
            _CANCELLATION_WINDOW_HOURS,
        )
        if cancellations is not None and cancellations > _CANCELLATION_LIMIT:
            self._throttle(
                user_id,
                action_type,
                "exceeded 8 cancellations in 24 hours",
                _CANCELLATION_THROTTLE,
            )
            with suppress(sqlite3.Error):
                self._repo.create_admin_approval(
                    AdminApproval(
                        user_id=user_id,
                        action_type=action_type,
                        reference_type="cancellation_throttle",
                        reference_id=user_id,
                        requested_by="system",
                    )
                )
            return RiskDecision(
                allowed=False,
                require_approval=True,
                reason="too many cancellations in 24 hours",
            )

        if action_type == "create_rfq":
            rfqs = self._count_or_none(
                "RFQs", self._repo.count_rfqs_in_window, user_id, _RFQ_WINDOW_MINUTES
            )
            if rfqs is not None and rfqs >= _RFQ_LIMIT:
                self._throttle(
                    user_id,
                    "create_rfq",
                    "exceeded 20 RFQs in 10 minutes",
                    _RFQ_THROTTLE,
                )
                return RiskDecision(allowed=False, reason="too many RFQ requests")

        flags = self._count_or_none(
            "harassment flags", self._repo.count_harassment_flags, user_id
        )
        if flags is not None and flags >= _HARASSMENT_LIMIT:
            self._throttle(user_id, "*", "multiple harassment flags", _HARASSMENT_THROTTLE)
            return RiskDecision(
                allowed=False,
                reason="account frozen due to multiple harassment reports",
            )

        return RiskDecision(allowed=True)

    def record_and_evaluate(
        self,
        user_id: str,
        event_type: str,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> RiskDecision:
        """Record an event, refresh the user's score, then evaluate the event as an action."""
        self._repo.create_risk_event(
            RiskEvent(
                user_id=user_id,
                event_type=event_type,
                description=description,
                severity=determine_severity(event_type),
                metadata=metadata,
            )
        )
        try:
            self._repo.compute_and_save_risk_score(user_id)
        except sqlite3.Error:
            logger.exception("failed to compute risk score")
        return self.evaluate_action(user_id, event_type)