"""Periodic background maintenance jobs."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

logger = logging.getLogger(__name__)

_SEVERITY_POINTS = {"critical": 10, "high": 5, "medium": 2, "low": 1}
_DEFAULT_POINTS = 1
_RECENT_WINDOW = timedelta(hours=1)
_SCORE_WINDOW = timedelta(days=30)


def _stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Worker:
    """Runs maintenance jobs on fixed intervals in background threads.

    The connection is shared by the job threads, so it must be opened with
    ``check_same_thread=False``; jobs are serialised with a lock.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()
        self._stop: threading.Event | None = None
        self._threads: list[threading.Thread] = []

    def _jobs(self) -> list[tuple[str, float, Callable[[], int]]]:
        return [
            ("deferred_notifications", 60.0, self.process_deferred_notifications),
            ("stale_download_tokens", 300.0, self.cleanup_stale_download_tokens),
            ("risk_recomputation", 600.0, self.recompute_risk_scores),
            ("idempotency_cleanup", 900.0, self.cleanup_expired_idempotency_keys),
        ]

    def start(self) -> None:
        """Start every job loop; raises RuntimeError if already running."""
        if self._stop is not None:
            raise RuntimeError("worker already started")
        stop = threading.Event()
        self._stop = stop
        self._threads = [
            threading.Thread(
                target=self._run_loop,
                args=(stop, name, interval, job),
                name=f"worker-{name}",
                daemon=True,
            )
            for name, interval, job in self._jobs()
        ]
        for thread in self._threads:
            thread.start()
        logger.info("background worker started")

    def stop(self) -> None:
        """Signal every job loop to finish and wait for them."""
        if self._stop is not None:
            self._stop.set()
            for thread in self._threads:
                thread.join()
            self._stop = None
            self._threads = []
        logger.info("background worker stopped")

    def _run_loop(
        self,
        stop: threading.Event,
        name: str,
        interval: float,
        job: Callable[[], int],
    ) -> None:
        while not stop.wait(interval):
            try:
                job()
            except Exception:
                logger.exception("worker job failed: %s", name)

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self._lock, self._conn:
            return self._conn.execute(sql, params).rowcount

    def process_deferred_notifications(self) -> int:
        """Deliver deferred notifications whose deferral has passed."""
        now = _stamp(_now())
        count = self._execute(
            "UPDATE notification_recipients SET status = 'delivered', delivered_at = ? "
            "WHERE status = 'deferred' AND deferred_until IS NOT NULL "
            "AND deferred_until <= ?",
            (now, now),
        )
        if count > 0:
            logger.info("delivered deferred notifications: %d", count)
        return count

    def cleanup_stale_download_tokens(self) -> int:
        """Delete expired download tokens."""
        count = self._execute(
            "DELETE FROM download_tokens WHERE expires_at < ?", (_stamp(_now()),)
        )
        if count > 0:
            logger.info("cleaned up expired download tokens: %d", count)
        return count

    def recompute_risk_scores(self) -> int:
        """Save a fresh score for every user with a risk event in the last hour.

        The score weighs the last 30 days of events by severity. Users whose
        score cannot be computed or saved are logged and skipped.
        """
        now = _now()
        with self._lock:
            user_ids = [
                row[0]
                for row in self._conn.execute(
                    "SELECT DISTINCT user_id FROM risk_events WHERE created_at > ?",
                    (_stamp(now - _RECENT_WINDOW),),
                )
            ]

        cutoff = _stamp(now - _SCORE_WINDOW)
        count = 0
        for user_id in user_ids:
            with self._lock:
                try:
                    severities = self._conn.execute(
                        "SELECT severity FROM risk_events "
                        "WHERE user_id = ? AND created_at > ?",
                        (user_id, cutoff),
                    ).fetchall()
                except sqlite3.Error:
                    logger.exception("risk score computation failed for %s", user_id)
                    continue
                score = float(
                    sum(_SEVERITY_POINTS.get(sev, _DEFAULT_POINTS) for (sev,) in severities)
                )
                try:
                    with self._conn:
                        self._conn.execute(
                            "INSERT INTO risk_scores (id, user_id, score, factors_json, "
                            "computed_at) VALUES (?, ?, ?, '{}', ?)",
                            (str(uuid.uuid4()), user_id, score, _stamp(_now())),
                        )
                except sqlite3.Error:
                    logger.exception("risk score insert failed for %s", user_id)
                    continue
            count += 1

        if count > 0:
            logger.info("recomputed risk scores: %d", count)
        return count

    def cleanup_expired_idempotency_keys(self) -> int:
        """Delete idempotency keys whose expiry has passed."""
        count = self._execute(
            "DELETE FROM idempotency_keys WHERE expires_at IS NOT NULL AND expires_at < ?",
            (_stamp(_now()),),
        )
        if count > 0:
            logger.info("cleaned up expired idempotency keys: %d", count)
        return count