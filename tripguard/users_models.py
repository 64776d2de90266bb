"""Records and views used by the users module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class User:
    """An account as stored."""

    id: str
    email: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class UserProfile:
    """Display details attached to an account."""

    user_id: str
    display_name: str = ""
    phone_masked: str | None = None


@dataclass
class UserPreference:
    """A user's preferences as a stored JSON document."""

    user_id: str
    preferences_json: str = "{}"


@dataclass
class UserView:
    """An account as returned to callers: identity, status, name and roles."""

    id: str
    email: str
    status: str
    display_name: str = ""
    roles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "status": self.status,
            "display_name": self.display_name,
            "roles": list(self.roles),
        }


@dataclass
class ProfileUpdate:
    """A partial profile change; fields left as None are not touched."""

    display_name: str | None = None
    phone_masked: str | None = None