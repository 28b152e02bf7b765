"""Password hashing helpers backed by passlib's bcrypt scheme."""
from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_ROUNDS = 12
MIN_ROUNDS = 4
MAX_ROUNDS = 31


class HashingError(Exception):
    """Raised when the hashing backend cannot produce or read a hash."""


class PasswordHasher:
    """One-way password hashing with an adjustable bcrypt work factor."""

    def __init__(self, *, rounds: int = DEFAULT_ROUNDS) -> None:
        if not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise ValueError(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
        self._rounds = rounds
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        """Return a salted bcrypt hash for ``password``."""

        try:
            return self._context.hash(password)
        except (ValueError, TypeError, OSError) as exc:
            raise HashingError(f"Failed to hash password: {exc}") from exc

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed``.

        A mismatch is reported as ``False``; only an unreadable hash raises
        :class:`HashingError`.
        """

        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError) as exc:
            raise HashingError(f"Malformed password hash: {exc}") from exc


default_hasher = PasswordHasher()


__all__ = ["DEFAULT_ROUNDS", "HashingError", "PasswordHasher", "default_hasher"]
