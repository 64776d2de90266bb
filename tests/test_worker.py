import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from tripguard.risk_models import RiskEvent
from tripguard.risk_repository import RiskRepository
from tripguard.worker import Worker


def _at(delta):
    return (datetime.now(timezone.utc) + delta).isoformat(timespec="microseconds")


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    RiskRepository(connection).create_schema()
    with connection:
        connection.executescript(
            """
            CREATE TABLE notification_recipients (
                id TEXT PRIMARY KEY, status TEXT NOT NULL,
                deferred_until TEXT, delivered_at TEXT);
            CREATE TABLE download_tokens (id TEXT PRIMARY KEY, expires_at TEXT NOT NULL);
            CREATE TABLE idempotency_keys (key TEXT PRIMARY KEY, expires_at TEXT);
            """
        )
    yield connection
    connection.close()


@pytest.fixture
def worker(conn):
    return Worker(conn)


def test_deferred_notifications_delivered_when_due(conn, worker):
    with conn:
        conn.executemany(
            "INSERT INTO notification_recipients (id, status, deferred_until) VALUES (?, ?, ?)",
            [
                ("due", "deferred", _at(timedelta(minutes=-5))),
                ("later", "deferred", _at(timedelta(hours=2))),
                ("open", "deferred", None),
                ("sent", "pending", _at(timedelta(minutes=-5))),
            ],
        )
    assert worker.process_deferred_notifications() == 1
    rows = dict(conn.execute("SELECT id, status FROM notification_recipients"))
    assert rows == {"due": "delivered", "later": "deferred", "open": "deferred", "sent": "pending"}
    delivered_at = conn.execute(
        "SELECT delivered_at FROM notification_recipients WHERE id = 'due'"
    ).fetchone()[0]
    assert delivered_at is not None
    assert worker.process_deferred_notifications() == 0


def test_stale_download_tokens_removed(conn, worker):
    with conn:
        conn.executemany(
            "INSERT INTO download_tokens (id, expires_at) VALUES (?, ?)",
            [("old", _at(timedelta(minutes=-1))), ("fresh", _at(timedelta(minutes=10)))],
        )
    assert worker.cleanup_stale_download_tokens() == 1
    assert [r[0] for r in conn.execute("SELECT id FROM download_tokens")] == ["fresh"]


def test_expired_idempotency_keys_removed(conn, worker):
    with conn:
        conn.executemany(
            "INSERT INTO idempotency_keys (key, expires_at) VALUES (?, ?)",
            [
                ("old", _at(timedelta(minutes=-1))),
                ("fresh", _at(timedelta(minutes=10))),
                ("forever", None),
            ],
        )
    assert worker.cleanup_expired_idempotency_keys() == 1
    assert sorted(r[0] for r in conn.execute("SELECT key FROM idempotency_keys")) == [
        "forever",
        "fresh",
    ]


def test_recompute_scores_only_for_recently_active_users(conn, worker):
    repo = RiskRepository(conn)
    repo.create_risk_event(RiskEvent(user_id="active", event_type="x", severity="critical"))
    repo.create_risk_event(
        RiskEvent(
            user_id="quiet",
            event_type="x",
            severity="high",
            created_at=datetime.now(timezone.utc) - timedelta(days=2),
        )
    )
    assert worker.recompute_risk_scores() == 1
    assert repo.get_risk_score("quiet") is None
    score = repo.get_risk_score("active")
    assert score.score == 10.0
    assert score.factors == {}


@pytest.mark.parametrize("severity, points", [("critical", 10.0), ("high", 5.0), ("medium", 2.0), ("low", 1.0)])
def test_recompute_uses_severity_points(conn, worker, severity, points):
    repo = RiskRepository(conn)
    repo.create_risk_event(RiskEvent(user_id="u", event_type="x", severity=severity))
    worker.recompute_risk_scores()
    assert repo.get_risk_score("u").score == points


def test_recompute_ignores_events_older_than_thirty_days(conn, worker):
    repo = RiskRepository(conn)
    repo.create_risk_event(RiskEvent(user_id="u", event_type="x", severity="high"))
    repo.create_risk_event(
        RiskEvent(
            user_id="u",
            event_type="x",
            severity="critical",
            created_at=datetime.now(timezone.utc) - timedelta(days=40),
        )
    )
    worker.recompute_risk_scores()
    assert repo.get_risk_score("u").score == 5.0


def test_start_twice_raises_and_restart_after_stop(worker):
    worker.start()
    try:
        with pytest.raises(RuntimeError):
            worker.start()
    finally:
        worker.stop()
    worker.start()
    try:
        with pytest.raises(RuntimeError):
            worker.start()
    finally:
        worker.stop()