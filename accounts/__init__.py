"""User account management service."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .errors import AccountsError, ConflictError, CredentialError, NotFoundError, StorageError
from .hashing import HashingError, PasswordHasher
from .memory import InMemoryUserRepository
from .models import UNSET, User, check_password, new_user
from .service import UserPage, UserService


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "AccountsError",
    "ConflictError",
    "CredentialError",
    "Database",
    "HashingError",
    "InMemoryUserRepository",
    "NotFoundError",
    "PasswordHasher",
    "StorageError",
    "UNSET",
    "User",
    "UserPage",
    "UserService",
    "check_password",
    "create_app",
    "new_user",
    "resolve_database_path",
]
