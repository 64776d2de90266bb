"""SQLite storage for risk events, scores, throttles, blacklists and approvals."""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

from .risk_models import (
    AdminApproval,
    BlacklistRecord,
    RiskEvent,
    RiskScore,
    ThrottleAction,
)

_SEVERITY_WEIGHTS = {"high": 10, "medium": 5, "low": 1}
_SCORE_CAP = 100.0
_SCORE_WINDOW = timedelta(days=30)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS risk_events (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    severity TEXT NOT NULL,
    metadata_json TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS risk_scores (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    score REAL NOT NULL,
    factors_json TEXT NOT NULL DEFAULT '{}',
    computed_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS throttle_actions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    reason TEXT NOT NULL,
    expires_at TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_by TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS blacklist_records (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    reason TEXT NOT NULL,
    blacklisted_by TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    lifted_at TEXT
);
CREATE TABLE IF NOT EXISTS admin_approvals (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    action_type TEXT NOT NULL,
    reference_type TEXT NOT NULL,
    reference_id TEXT NOT NULL,
    status TEXT NOT NULL,
    requested_by TEXT NOT NULL,
    resolved_by TEXT,
    resolution_notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    resolved_at TEXT
);
CREATE TABLE IF NOT EXISTS rfqs (
    id TEXT PRIMARY KEY,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_THROTTLE_COLUMNS = (
    "id, user_id, action_type, reason, expires_at, active, created_by, created_at"
)
_APPROVAL_COLUMNS = (
    "id, user_id, action_type, reference_type, reference_id, status, requested_by, "
    "resolved_by, resolution_notes, created_at, resolved_at"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime | None) -> str | None:
    """Store timestamps as fixed-width UTC ISO strings so they sort correctly."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def _new_id() -> str:
    return str(uuid.uuid4())


def _throttle_from_row(row) -> ThrottleAction:
    return ThrottleAction(
        id=row[0],
        user_id=row[1],
        action_type=row[2],
        reason=row[3],
        expires_at=_from_db(row[4]),
        active=bool(row[5]),
        created_by=row[6],
        created_at=_from_db(row[7]),
    )


def _approval_from_row(row) -> AdminApproval:
    return AdminApproval(
        id=row[0],
        user_id=row[1],
        action_type=row[2],
        reference_type=row[3],
        reference_id=row[4],
        status=row[5],
        requested_by=row[6],
        resolved_by=row[7],
        resolution_notes=row[8],
        created_at=_from_db(row[9]),
        resolved_at=_from_db(row[10]),
    )


class RiskRepository:
    """Reads and writes risk data through a SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create_schema(self) -> None:
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def _count(self, sql: str, params: tuple) -> int:
        return self._conn.execute(sql, params).fetchone()[0]

    def create_risk_event(self, event: RiskEvent) -> str:
        """Store an event under a new id; created_at defaults to now."""
        event_id = _new_id()
        with self._conn:
            self._conn.execute(
                "INSERT INTO risk_events (id, user_id, event_type, description, "
                "severity, metadata_json, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    event_id,
                    event.user_id,
                    event.event_type,
                    event.description,
                    event.severity,
                    json.dumps(event.metadata),
                    _to_db(event.created_at or _now()),
                ),
            )
        return event_id

    def get_recent_events(self, user_id: str, limit: int) -> list[RiskEvent]:
        rows = self._conn.execute(
            "SELECT id, user_id, event_type, description, severity, metadata_json, "
            "created_at FROM risk_events WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (user_id, limit),
        )
        return [
            RiskEvent(
                id=row[0],
                user_id=row[1],
                event_type=row[2],
                description=row[3],
                severity=row[4],
                metadata=json.loads(row[5]) if row[5] is not None else None,
                created_at=_from_db(row[6]),
            )
            for row in rows
        ]

    def get_risk_score(self, user_id: str) -> RiskScore | None:
        """Return the most recently computed score, or None if there is none."""
        row = self._conn.execute(
            "SELECT id, user_id, score, factors_json, computed_at FROM risk_scores "
            "WHERE user_id = ? ORDER BY computed_at DESC, rowid DESC LIMIT 1",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return RiskScore(
            id=row[0],
            user_id=row[1],
            score=row[2],
            factors=json.loads(row[3]),
            computed_at=_from_db(row[4]),
        )

    def compute_and_save_risk_score(self, user_id: str) -> RiskScore:
        """Weigh the last 30 days of events by severity, capped at 100, and save."""
        cutoff = _to_db(_now() - _SCORE_WINDOW)
        factors = {
            severity: self._count(
                "SELECT COUNT(*) FROM risk_events "
                "WHERE user_id = ? AND severity = ? AND created_at > ?",
                (user_id, severity, cutoff),
            )
            for severity in _SEVERITY_WEIGHTS
        }
        score = float(
            sum(_SEVERITY_WEIGHTS[sev] * count for sev, count in factors.items())
        )
        score = min(score, _SCORE_CAP)

        result = RiskScore(
            id=_new_id(),
            user_id=user_id,
            score=score,
            factors=factors,
            computed_at=_now(),
        )
        with self._conn:
            self._conn.execute(
                "INSERT INTO risk_scores (id, user_id, score, factors_json, computed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    result.id,
                    user_id,
                    score,
                    json.dumps(factors, separators=(",", ":")),
                    _to_db(result.computed_at),
                ),
            )
        return result

    def get_active_throttles(self, user_id: str) -> list[ThrottleAction]:
        rows = self._conn.execute(
            f"SELECT {_THROTTLE_COLUMNS} FROM throttle_actions "
            "WHERE user_id = ? AND active = 1 "
            "AND (expires_at IS NULL OR expires_at > ?) "
            "ORDER BY created_at, rowid",
            (user_id, _to_db(_now())),
        )
        return [_throttle_from_row(row) for row in rows]

    def find_throttle(self, user_id: str, action_type: str) -> ThrottleAction | None:
        """Return the newest live throttle covering the action, or None."""
        row = self._conn.execute(
            f"SELECT {_THROTTLE_COLUMNS} FROM throttle_actions "
            "WHERE user_id = ? AND (action_type = ? OR action_type = '*') "
            "AND active = 1 AND (expires_at IS NULL OR expires_at > ?) "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (user_id, action_type, _to_db(_now())),
        ).fetchone()
        return _throttle_from_row(row) if row is not None else None

    def create_throttle(self, action: ThrottleAction) -> str:
        throttle_id = _new_id()
        with self._conn:
            self._conn.execute(
                f"INSERT INTO throttle_actions ({_THROTTLE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
                (
                    throttle_id,
                    action.user_id,
                    action.action_type,
                    action.reason,
                    _to_db(action.expires_at),
                    action.created_by,
                    _to_db(action.created_at or _now()),
                ),
            )
        return throttle_id

    def count_cancellations_in_window(self, user_id: str, hours: int) -> int:
        cutoff = _to_db(_now() - timedelta(hours=hours))
        return self._count(
            "SELECT COUNT(*) FROM risk_events WHERE user_id = ? "
            "AND event_type = 'cancellation' AND created_at > ?",
            (user_id, cutoff),
        )

    def count_rfqs_in_window(self, user_id: str, minutes: int) -> int:
        cutoff = _to_db(_now() - timedelta(minutes=minutes))
        return self._count(
            "SELECT COUNT(*) FROM rfqs WHERE created_by = ? AND created_at > ?",
            (user_id, cutoff),
        )

    def count_harassment_flags(self, user_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) FROM risk_events "
            "WHERE user_id = ? AND event_type = 'harassment_flag'",
            (user_id,),
        )

    def get_blacklist(self, user_id: str) -> BlacklistRecord | None:
        """Return the user's active blacklist record, or None."""
        row = self._conn.execute(
            "SELECT id, user_id, reason, blacklisted_by, active, created_at, lifted_at "
            "FROM blacklist_records WHERE user_id = ? AND active = 1 LIMIT 1",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return BlacklistRecord(
            id=row[0],
            user_id=row[1],
            reason=row[2],
            blacklisted_by=row[3],
            active=bool(row[4]),
            created_at=_from_db(row[5]),
            lifted_at=_from_db(row[6]),
        )

    def blacklist_user(self, user_id: str, admin_id: str, reason: str) -> str:
        record_id = _new_id()
        with self._conn:
            self._conn.execute(
                "INSERT INTO blacklist_records (id, user_id, reason, blacklisted_by, "
                "active, created_at) VALUES (?, ?, ?, ?, 1, ?)",
                (record_id, user_id, reason, admin_id, _to_db(_now())),
            )
        return record_id

    def unblacklist_user(self, user_id: str) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE blacklist_records SET active = 0, lifted_at = ? "
                "WHERE user_id = ? AND active = 1",
                (_to_db(_now()), user_id),
            )

    def create_admin_approval(self, approval: AdminApproval) -> str:
        """Store a new approval request; its status always starts as pending."""
        approval_id = _new_id()
        with self._conn:
            self._conn.execute(
                "INSERT INTO admin_approvals (id, user_id, action_type, reference_type, "
                "reference_id, status, requested_by, created_at) "
                "VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)",
                (
                    approval_id,
                    approval.user_id,
                    approval.action_type,
                    approval.reference_type,
                    approval.reference_id,
                    approval.requested_by,
                    _to_db(_now()),
                ),
            )
        return approval_id

    def get_pending_approvals(self) -> list[AdminApproval]:
        rows = self._conn.execute(
            f"SELECT {_APPROVAL_COLUMNS} FROM admin_approvals "
            "WHERE status = 'pending' ORDER BY created_at ASC, rowid ASC"
        )
        return [_approval_from_row(row) for row in rows]

    def resolve_approval(
        self, approval_id: str, resolver_id: str, status: str, notes: str
    ) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE admin_approvals SET status = ?, resolved_by = ?, "
                "resolution_notes = ?, resolved_at = ? WHERE id = ?",
                (status, resolver_id, notes, _to_db(_now()), approval_id),
            )