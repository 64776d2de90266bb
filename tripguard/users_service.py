"""Access-checked user operations."""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable, Sequence

from .errors import ForbiddenError, InternalError, NotFoundError
from .users_models import ProfileUpdate, UserView
from .users_repository import UserRepository

_ADMIN_ROLE = "administrator"


def can_access_user(actor_id: str, actor_roles: Iterable[str], target_id: str) -> bool:
    """True when the actor is the target user or an administrator."""
    return actor_id == target_id or _ADMIN_ROLE in actor_roles


def page_summary(
    users: Sequence[UserView], total: int, page: int, page_size: int
) -> dict[str, Any]:
    """Build the paged listing document returned to administrators."""
    return {
        "items": [u.to_dict() for u in users],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }


class UserService:
    """User lookups and updates, enforcing that users only touch themselves."""

    def __init__(self, repo: UserRepository) -> None:
        self._repo = repo

    def get_user(self, user_id: str) -> UserView:
        try:
            user = self._repo.get_by_id(user_id)
        except sqlite3.Error as exc:
            raise InternalError("get user", exc) from exc
        if user is None:
            raise NotFoundError("user not found")
        return user

    def view_user(
        self, user_id: str, actor_id: str, actor_roles: Iterable[str]
    ) -> UserView:
        """Return a user to an actor; access is checked before any lookup."""
        if not can_access_user(actor_id, actor_roles, user_id):
            raise ForbiddenError("access denied")
        try:
            return self.get_user(user_id)
        except InternalError as exc:
            raise NotFoundError("user not found") from exc

    def update_profile(
        self,
        user_id: str,
        actor_id: str,
        actor_roles: Iterable[str],
        update: ProfileUpdate,
    ) -> None:
        if not can_access_user(actor_id, actor_roles, user_id):
            raise ForbiddenError("forbidden")
        self._repo.update_profile(user_id, update)

    def update_preferences(
        self,
        user_id: str,
        actor_id: str,
        actor_roles: Iterable[str],
        preferences: dict[str, Any],
    ) -> None:
        if not can_access_user(actor_id, actor_roles, user_id):
            raise ForbiddenError("forbidden")
        self._repo.update_preferences(user_id, preferences)

    def list_users(
        self, page: int, page_size: int, status: str
    ) -> tuple[list[UserView], int]:
        return self._repo.list_users(page, page_size, status)