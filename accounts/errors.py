"""Error types raised by the account service and its repositories."""

from __future__ import annotations


class AccountsError(Exception):
    """Base class for failures surfaced by the account service."""


class NotFoundError(AccountsError):
    """Raised when no user exists for the requested identifier."""


class ConflictError(AccountsError):
    """Raised when a username or email address is already in use."""


class CredentialError(AccountsError):
    """Raised when a password could not be hashed."""


class StorageError(AccountsError):
    """Raised when the backing store fails to complete an operation."""


__all__ = [
    "AccountsError",
    "ConflictError",
    "CredentialError",
    "NotFoundError",
    "StorageError",
]
