import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from tripguard.risk_models import AdminApproval, RiskEvent, ThrottleAction
from tripguard.risk_repository import RiskRepository


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def repo(conn):
    r = RiskRepository(conn)
    r.create_schema()
    return r


def _ago(**kwargs):
    return datetime.now(timezone.utc) - timedelta(**kwargs)


def _ahead(**kwargs):
    return datetime.now(timezone.utc) + timedelta(**kwargs)


def _event(user, event_type, severity, created_at=None):
    return RiskEvent(
        user_id=user,
        event_type=event_type,
        description="d",
        severity=severity,
        metadata={"severity": severity},
        created_at=created_at,
    )


def test_recent_events_round_trip_and_order(repo):
    first = repo.create_risk_event(_event("u1", "cancellation", "medium", _ago(hours=2)))
    second = repo.create_risk_event(_event("u1", "harassment_flag", "high", _ago(hours=1)))
    repo.create_risk_event(_event("u2", "cancellation", "medium"))

    events = repo.get_recent_events("u1", 20)
    assert [e.id for e in events] == [second, first]
    assert events[0].metadata == {"severity": "high"}
    assert events[1].event_type == "cancellation"


def test_recent_events_respects_limit(repo):
    for _ in range(5):
        repo.create_risk_event(_event("u1", "rfq_creation", "low"))
    assert len(repo.get_recent_events("u1", 3)) == 3


def test_risk_score_absent_initially(repo):
    assert repo.get_risk_score("u1") is None


def test_compute_score_weights_recent_events(repo):
    for _ in range(2):
        repo.create_risk_event(_event("u1", "harassment_flag", "high"))
    repo.create_risk_event(_event("u1", "cancellation", "medium"))
    for _ in range(3):
        repo.create_risk_event(_event("u1", "rfq_creation", "low"))
    repo.create_risk_event(_event("u1", "harassment_flag", "high", _ago(days=31)))

    score = repo.compute_and_save_risk_score("u1")
    assert score.factors == {"high": 2, "medium": 1, "low": 3}
    assert score.score == 28.0

    stored = repo.get_risk_score("u1")
    assert stored.id == score.id
    assert stored.factors == score.factors


def test_compute_score_is_capped(repo):
    for _ in range(11):
        repo.create_risk_event(_event("u1", "harassment_flag", "high"))
    assert repo.compute_and_save_risk_score("u1").score == 100.0


def test_latest_score_wins(repo):
    repo.compute_and_save_risk_score("u1")
    repo.create_risk_event(_event("u1", "cancellation", "medium"))
    latest = repo.compute_and_save_risk_score("u1")
    assert repo.get_risk_score("u1").score == latest.score


def test_active_throttles_exclude_expired(repo):
    live = repo.create_throttle(ThrottleAction("u1", "create_rfq", "r", _ahead(hours=1)))
    forever = repo.create_throttle(ThrottleAction("u1", "cancel", "r", None))
    repo.create_throttle(ThrottleAction("u1", "cancel", "r", _ago(hours=1)))

    ids = {t.id for t in repo.get_active_throttles("u1")}
    assert ids == {live, forever}


def test_find_throttle_matches_action_or_wildcard(repo):
    assert repo.find_throttle("u1", "create_rfq") is None
    repo.create_throttle(ThrottleAction("u1", "create_rfq", "rfq", _ahead(hours=1)))
    assert repo.find_throttle("u1", "create_rfq").reason == "rfq"
    assert repo.find_throttle("u1", "cancel") is None

    repo.create_throttle(ThrottleAction("u1", "*", "frozen", _ahead(hours=24)))
    found = repo.find_throttle("u1", "cancel")
    assert found.action_type == "*"
    assert found.active is True


def test_count_cancellations_in_window(repo):
    repo.create_risk_event(_event("u1", "cancellation", "medium"))
    repo.create_risk_event(_event("u1", "cancellation", "medium", _ago(hours=30)))
    repo.create_risk_event(_event("u1", "harassment_flag", "high"))
    assert repo.count_cancellations_in_window("u1", 24) == 1


def test_count_rfqs_in_window(repo, conn):
    stamps = [_ago(minutes=1), _ago(minutes=5), _ago(minutes=30)]
    with conn:
        for stamp in stamps:
            conn.execute(
                "INSERT INTO rfqs (id, created_by, created_at) VALUES (?, ?, ?)",
                (str(uuid.uuid4()), "u1", stamp.isoformat(timespec="microseconds")),
            )
    assert repo.count_rfqs_in_window("u1", 10) == 2
    assert repo.count_rfqs_in_window("u2", 10) == 0


def test_count_harassment_flags(repo):
    repo.create_risk_event(_event("u1", "harassment_flag", "high", _ago(days=90)))
    repo.create_risk_event(_event("u1", "harassment_flag", "high"))
    repo.create_risk_event(_event("u1", "cancellation", "medium"))
    assert repo.count_harassment_flags("u1") == 2


def test_blacklist_lifecycle(repo, conn):
    assert repo.get_blacklist("u1") is None
    record_id = repo.blacklist_user("u1", "admin", "fraud")
    record = repo.get_blacklist("u1")
    assert record.id == record_id
    assert record.reason == "fraud"
    assert record.blacklisted_by == "admin"

    repo.unblacklist_user("u1")
    assert repo.get_blacklist("u1") is None
    lifted = conn.execute(
        "SELECT lifted_at FROM blacklist_records WHERE id = ?", (record_id,)
    ).fetchone()[0]
    assert lifted is not None and lifted.startswith(str(datetime.now(timezone.utc).year))


def test_approvals_pending_and_resolved(repo):
    first = repo.create_admin_approval(
        AdminApproval("cancel", "cancellation_throttle", "u1", "system", user_id="u1")
    )
    second = repo.create_admin_approval(
        AdminApproval("cancel", "cancellation_throttle", "u2", "system", user_id="u2")
    )
    pending = repo.get_pending_approvals()
    assert [a.id for a in pending] == [first, second]
    assert all(a.status == "pending" for a in pending)

    repo.resolve_approval(first, "admin", "approved", "ok")
    remaining = repo.get_pending_approvals()
    assert [a.id for a in remaining] == [second]
    assert remaining[0].resolved_by is None