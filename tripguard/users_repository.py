"""SQLite storage for accounts, profiles, preferences and roles."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .users_models import ProfileUpdate, UserView

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id TEXT PRIMARY KEY,
    display_name TEXT,
    phone_masked TEXT,
    updated_at TEXT
);
CREATE TABLE IF NOT EXISTS user_preferences (
    user_id TEXT PRIMARY KEY,
    preferences_json TEXT NOT NULL,
    updated_at TEXT
);
CREATE TABLE IF NOT EXISTS roles (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS user_roles (
    user_id TEXT NOT NULL,
    role_id TEXT NOT NULL,
    PRIMARY KEY (user_id, role_id)
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class UserRepository:
    """Reads and writes user data through a SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create_schema(self) -> None:
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def get_by_id(self, user_id: str) -> UserView | None:
        """Return a live (not deleted) user with roles, or None."""
        row = self._conn.execute(
            "SELECT u.id, u.email, u.status, p.display_name "
            "FROM users u LEFT JOIN user_profiles p ON p.user_id = u.id "
            "WHERE u.id = ? AND u.deleted_at IS NULL",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        roles = [
            name
            for (name,) in self._conn.execute(
                "SELECT r.name FROM roles r JOIN user_roles ur ON ur.role_id = r.id "
                "WHERE ur.user_id = ? ORDER BY ur.rowid",
                (user_id,),
            )
        ]
        return UserView(
            id=row[0],
            email=row[1],
            status=row[2],
            display_name=row[3] or "",
            roles=roles,
        )

    def update_profile(self, user_id: str, update: ProfileUpdate) -> None:
        """Apply the given fields; the phone is only set on an existing profile."""
        with self._conn:
            if update.display_name is not None:
                self._conn.execute(
                    "INSERT INTO user_profiles (user_id, display_name, updated_at) "
                    "VALUES (?, ?, ?) ON CONFLICT (user_id) DO UPDATE SET "
                    "display_name = excluded.display_name, updated_at = excluded.updated_at",
                    (user_id, update.display_name, _now()),
                )
            if update.phone_masked is not None:
                self._conn.execute(
                    "UPDATE user_profiles SET phone_masked = ?, updated_at = ? "
                    "WHERE user_id = ?",
                    (update.phone_masked, _now(), user_id),
                )

    def update_preferences(self, user_id: str, preferences: dict[str, Any]) -> None:
        """Replace the user's preferences document."""
        data = json.dumps(preferences)
        with self._conn:
            self._conn.execute(
                "INSERT INTO user_preferences (user_id, preferences_json, updated_at) "
                "VALUES (?, ?, ?) ON CONFLICT (user_id) DO UPDATE SET "
                "preferences_json = excluded.preferences_json, "
                "updated_at = excluded.updated_at",
                (user_id, data, _now()),
            )

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        """Return the stored preferences, or an empty dict if none are stored."""
        row = self._conn.execute(
            "SELECT preferences_json FROM user_preferences WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return {}
        return json.loads(row[0])

    def list_users(
        self, page: int, page_size: int, status: str
    ) -> tuple[list[UserView], int]:
        """Return one page of live users, newest first, and the total count.

        An empty status means every status.
        """
        where = "u.deleted_at IS NULL"
        params: tuple = ()
        if status:
            where += " AND u.status = ?"
            params = (status,)

        total = self._conn.execute(
            f"SELECT COUNT(*) FROM users u WHERE {where}", params
        ).fetchone()[0]

        offset = (page - 1) * page_size
        rows = self._conn.execute(
            "SELECT u.id, u.email, u.status, COALESCE(p.display_name, '') "
            "FROM users u LEFT JOIN user_profiles p ON p.user_id = u.id "
            f"WHERE {where} ORDER BY u.created_at DESC LIMIT ? OFFSET ?",
            params + (page_size, offset),
        )
        users = [
            UserView(id=r[0], email=r[1], status=r[2], display_name=r[3])
            for r in rows
        ]
        return users, total