"""In-memory user storage for the HTTP service."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Iterable, List

from .models import User, utcnow


class UserValidationError(ValueError):
    """Raised when a user cannot be created from the supplied fields."""


SEED_USERS: tuple[User, ...] = (
    User(id=1, name="Alice Johnson", email="alice@example.com"),
    User(id=2, name="Bob Smith", email="bob@example.com"),
    User(id=3, name="Charlie Brown", email="charlie@example.com"),
)


def _is_present(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


class UserStore:
    """Ordered, append-only user list guarded by a lock."""

    def __init__(
        self,
        users: Iterable[User] | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users: List[User] = list(SEED_USERS if users is None else users)
        self._clock = clock
        self._last_id = max((user.id for user in self._users), default=0)
        self._lock = threading.Lock()

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users)

    def create(self, name: object, email: object) -> User:
        if not _is_present(name) or not _is_present(email):
            raise UserValidationError("Name and email are required")

        with self._lock:
            created_at = self._clock()
            # Millisecond wall-clock ids, bumped when two creations share a tick.
            candidate = int(created_at.timestamp() * 1000)
            user_id = max(candidate, self._last_id + 1)
            user = User(id=user_id, name=str(name), email=str(email), created_at=created_at)
            self._users.append(user)
            self._last_id = user_id
        return user

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


__all__ = ["SEED_USERS", "UserStore", "UserValidationError"]
