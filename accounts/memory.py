"""In-memory user repository used by tests and throwaway deployments."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from anyio.lowlevel import checkpoint

from .errors import ConflictError, NotFoundError
from .models import User


class InMemoryUserRepository:
    """Thread-safe dict-backed implementation of ``UserRepository``.

    Usernames and emails are unique, mirroring the constraints of the SQLite
    schema.
    """

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _ensure_unique(self, user: User) -> None:
        for existing in self._users.values():
            if existing.id == user.id:
                continue
            if existing.username == user.username:
                raise ConflictError("username already taken")
            if existing.email == user.email:
                raise ConflictError("email already registered")

    async def create(self, user: User) -> User:
        await checkpoint()
        with self._lock:
            candidate = replace(user, id=0)
            self._ensure_unique(candidate)
            stored = replace(user, id=self._next_id)
            self._users[stored.id] = stored
            self._next_id += 1
        return stored

    async def get_by_id(self, user_id: int) -> User:
        await checkpoint()
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"user not found with ID {user_id}")
        return user

    async def get_by_username(self, username: str) -> User:
        await checkpoint()
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
        raise NotFoundError(f"user not found with username {username!r}")

    async def get_by_email(self, email: str) -> User:
        await checkpoint()
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user
        raise NotFoundError(f"user not found with email {email!r}")

    async def update(self, user: User) -> User:
        await checkpoint()
        with self._lock:
            if user.id not in self._users:
                raise NotFoundError(f"user not found with ID {user.id}")
            self._ensure_unique(user)
            stored = replace(user, updated_at=max(self._now(), user.updated_at))
            self._users[stored.id] = stored
        return stored

    async def delete(self, user_id: int) -> None:
        await checkpoint()
        with self._lock:
            if self._users.pop(user_id, None) is None:
                raise NotFoundError(f"user not found with ID {user_id}")

    async def list(self, offset: int, limit: int) -> Tuple[List[User], int]:
        await checkpoint()
        with self._lock:
            ordered = [self._users[key] for key in sorted(self._users)]
        return ordered[offset : offset + limit], len(ordered)


__all__ = ["InMemoryUserRepository"]
