from __future__ import annotations

from threading import Lock
from typing import Any

_SEED_USERS = [
    {"id": 1, "name": "John Doe", "email": "john@example.com"},
    {"id": 2, "name": "Jane Smith", "email": "jane@example.com"},
]


class UserStore:
    """In-memory stand-in for the user table."""

    def __init__(self, seed: list[dict[str, Any]] | None = None) -> None:
        self._lock = Lock()
        self._users = [dict(u) for u in (_SEED_USERS if seed is None else seed)]

    def get(self, user_id: int) -> dict[str, Any] | None:
        with self._lock:
            for user in self._users:
                if user["id"] == user_id:
                    return dict(user)
        return None

    def create(self, name: str, email: str) -> dict[str, Any]:
        with self._lock:
            user = {"id": len(self._users) + 1, "name": name, "email": email}
            self._users.append(user)
            return dict(user)
