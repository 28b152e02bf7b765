"""Domain models for the account service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from .errors import CredentialError
from .hashing import HashingError, PasswordHasher, default_hasher


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET
"""Marks a field that was not provided in a partial update."""

FieldUpdate = Union[str, _Unset]


@dataclass(frozen=True)
class User:
    """Represents a user account stored by a repository."""

    id: int
    username: str
    email: str
    password_hash: str = field(repr=False)
    full_name: str
    created_at: datetime
    updated_at: datetime

    def check_password(self, password: str, *, hasher: Optional[PasswordHasher] = None) -> bool:
        return check_password(self, password, hasher=hasher)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def new_user(
    username: str,
    email: str,
    password: str,
    full_name: str,
    *,
    hasher: Optional[PasswordHasher] = None,
) -> User:
    """Build an unsaved :class:`User` with a freshly hashed password.

    The returned user has ``id == 0`` until a repository stores it.
    """

    hasher = hasher or default_hasher
    try:
        password_hash = hasher.hash(password)
    except HashingError as exc:
        raise CredentialError(str(exc)) from exc

    now = _current_timestamp()
    return User(
        id=0,
        username=username,
        email=email,
        password_hash=password_hash,
        full_name=full_name,
        created_at=now,
        updated_at=now,
    )


def check_password(user: User, password: str, *, hasher: Optional[PasswordHasher] = None) -> bool:
    """Return ``True`` if ``password`` matches the user's stored hash."""

    return (hasher or default_hasher).verify(password, user.password_hash)


__all__ = ["FieldUpdate", "UNSET", "User", "check_password", "new_user"]
