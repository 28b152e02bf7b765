"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import closing
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple, TypeVar

from anyio import CancelScope, get_cancelled_exc_class, to_thread

from .errors import ConflictError, NotFoundError, StorageError
from .models import User

logger = logging.getLogger("accounts.database")

_T = TypeVar("_T")

SQLITE_MAX_INTEGER = 2**63 - 1

_USER_COLUMNS = "id, username, email, password_hash, full_name, created_at, updated_at"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _fits_integer(value: int) -> bool:
    return -SQLITE_MAX_INTEGER - 1 <= value <= SQLITE_MAX_INTEGER


def _conflict_from_integrity_error(exc: sqlite3.IntegrityError) -> Optional[ConflictError]:
    message = str(exc)
    if "users.username" in message:
        return ConflictError("username already taken")
    if "users.email" in message:
        return ConflictError("email already registered")
    return None


class Database:
    """User repository stored in a single SQLite file.

    Each operation opens its own connection in a worker thread and runs inside
    one transaction, so a failed or cancelled call leaves no partial writes.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with closing(self._connect()) as conn, conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    full_name TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
        logger.info("User table ready in %s", self._path)

    async def _run(self, operation: str, work: Callable[[sqlite3.Connection], _T]) -> _T:
        """Execute ``work`` in a worker thread inside a single transaction.

        Cancelling the caller interrupts the running statement and waits for
        the worker to roll back before the cancellation propagates. The
        transaction only commits if no cancellation arrived first.
        """

        state = threading.Lock()
        aborted = threading.Event()
        finished = threading.Event()
        active: List[sqlite3.Connection] = []

        def _job() -> _T:
            with state:
                if aborted.is_set():
                    raise StorageError(f"{operation} was cancelled")
                conn = self._connect()
                active.append(conn)
            try:
                with conn:
                    result = work(conn)
                    with state:
                        if aborted.is_set():
                            raise StorageError(f"{operation} was cancelled")
                        conn.commit()
                return result
            finally:
                with state:
                    active.remove(conn)
                    conn.close()
                finished.set()

        try:
            return await to_thread.run_sync(_job, abandon_on_cancel=True)
        except get_cancelled_exc_class():
            with state:
                aborted.set()
                running = bool(active)
                for conn in active:
                    conn.interrupt()
            if running:
                with CancelScope(shield=True):
                    await to_thread.run_sync(finished.wait)
            raise
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to {operation}: {exc}") from exc

    # ------------------------------------------------------------------
    # UserRepository
    # ------------------------------------------------------------------
    async def create(self, user: User) -> User:
        def _insert(conn: sqlite3.Connection) -> User:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (username, email, password_hash, full_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.username,
                        user.email,
                        user.password_hash,
                        user.full_name,
                        _serialize_datetime(user.created_at),
                        _serialize_datetime(user.updated_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                conflict = _conflict_from_integrity_error(exc)
                if conflict is None:
                    raise
                raise conflict from exc
            return replace(user, id=int(cursor.lastrowid))

        return await self._run("create user", _insert)

    async def get_by_id(self, user_id: int) -> User:
        row = await self._fetch_one("id", user_id) if _fits_integer(user_id) else None
        if row is None:
            raise NotFoundError(f"user not found with ID {user_id}")
        return self._row_to_user(row)

    async def get_by_username(self, username: str) -> User:
        row = await self._fetch_one("username", username)
        if row is None:
            raise NotFoundError(f"user not found with username {username!r}")
        return self._row_to_user(row)

    async def get_by_email(self, email: str) -> User:
        row = await self._fetch_one("email", email)
        if row is None:
            raise NotFoundError(f"user not found with email {email!r}")
        return self._row_to_user(row)

    async def _fetch_one(self, column: str, value: object) -> Optional[sqlite3.Row]:
        query = f"SELECT {_USER_COLUMNS} FROM users WHERE {column} = ?"
        return await self._run(
            f"look up user by {column}",
            lambda conn: conn.execute(query, (value,)).fetchone(),
        )

    async def update(self, user: User) -> User:
        updated = replace(user, updated_at=max(_current_timestamp(), user.updated_at))

        def _update(conn: sqlite3.Connection) -> int:
            try:
                cursor = conn.execute(
                    """
                    UPDATE users
                       SET username = ?, email = ?, password_hash = ?, full_name = ?, updated_at = ?
                     WHERE id = ?
                    """,
                    (
                        updated.username,
                        updated.email,
                        updated.password_hash,
                        updated.full_name,
                        _serialize_datetime(updated.updated_at),
                        updated.id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                conflict = _conflict_from_integrity_error(exc)
                if conflict is None:
                    raise
                raise conflict from exc
            return cursor.rowcount

        if not _fits_integer(user.id) or await self._run("update user", _update) == 0:
            raise NotFoundError(f"user not found with ID {user.id}")
        return updated

    async def delete(self, user_id: int) -> None:
        if not _fits_integer(user_id):
            raise NotFoundError(f"user not found with ID {user_id}")
        rowcount = await self._run(
            "delete user",
            lambda conn: conn.execute("DELETE FROM users WHERE id = ?", (user_id,)).rowcount,
        )
        if rowcount == 0:
            raise NotFoundError(f"user not found with ID {user_id}")

    async def list(self, offset: int, limit: int) -> Tuple[List[User], int]:
        # Past the largest rowid there is nothing to return.
        offset = min(offset, SQLITE_MAX_INTEGER)
        limit = min(limit, SQLITE_MAX_INTEGER)

        def _select(conn: sqlite3.Connection) -> Tuple[List[sqlite3.Row], int]:
            rows = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY id LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
            total = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            return rows, int(total)

        rows, total = await self._run("list users", _select)
        return [self._row_to_user(row) for row in rows], total

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            full_name=row["full_name"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


__all__ = ["Database", "SQLITE_MAX_INTEGER", "resolve_database_path"]
