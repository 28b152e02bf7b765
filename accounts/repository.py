"""Persistence contract consumed by :class:`accounts.service.UserService`.

Implementations:
  - :class:`accounts.database.Database` stores users in SQLite.
  - :class:`accounts.memory.InMemoryUserRepository` keeps them in a dict.

Every method is a coroutine so that cancelling the calling task aborts the
in-flight operation instead of letting it finish unobserved.
"""

from __future__ import annotations

from typing import List, Protocol, Tuple

from .models import User


class UserRepository(Protocol):
    """Storage operations for :class:`~accounts.models.User` records."""

    async def create(self, user: User) -> User:
        """Store a new user and return it with its assigned id.

        Raises:
            StorageError: the backend failed.
            ConflictError: the backend rejected a duplicate username/email.
        """
        ...

    async def get_by_id(self, user_id: int) -> User:
        """Raises ``NotFoundError`` when no user has ``user_id``."""
        ...

    async def get_by_username(self, username: str) -> User:
        ...

    async def get_by_email(self, email: str) -> User:
        ...

    async def update(self, user: User) -> User:
        """Persist every mutable field of ``user`` and refresh ``updated_at``.

        Raises:
            NotFoundError: no stored user has ``user.id``.
            StorageError: the backend failed.
        """
        ...

    async def delete(self, user_id: int) -> None:
        """Remove the user permanently; ``NotFoundError`` if it is absent."""
        ...

    async def list(self, offset: int, limit: int) -> Tuple[List[User], int]:
        """Return users ordered by id plus the total number of stored users."""
        ...


__all__ = ["UserRepository"]
