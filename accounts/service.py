"""Business rules for managing user accounts."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Awaitable, Callable, List, Optional, Tuple

from anyio import to_thread

from .errors import ConflictError, CredentialError, NotFoundError
from .hashing import HashingError, PasswordHasher, default_hasher
from .models import UNSET, FieldUpdate, User, new_user
from .repository import UserRepository

logger = logging.getLogger("accounts.service")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

USERNAME_TAKEN = "username already taken"
EMAIL_REGISTERED = "email already registered"


@dataclass(frozen=True)
class UserPage:
    """One page of users together with the total number of stored users."""

    users: List[User]
    total_count: int
    page: int
    page_size: int


def normalize_pagination(page: int, page_size: int) -> Tuple[int, int, int]:
    """Clamp paging arguments and return ``(page, page_size, offset)``."""

    if page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    elif page_size > MAX_PAGE_SIZE:
        page_size = MAX_PAGE_SIZE
    page = max(page, 1)
    offset = max((page - 1) * page_size, 0)
    return page, page_size, offset


class UserService:
    """Create, read, update, delete and list users.

    The service keeps no state between calls; everything lives in the
    injected repository. Uniqueness checks happen before the write and are
    not atomic with it, so two concurrent creates with the same username can
    both pass the check. The repository's own constraints decide the loser.
    """

    def __init__(self, repository: UserRepository, *, hasher: Optional[PasswordHasher] = None) -> None:
        self._repository = repository
        self._hasher = hasher or default_hasher

    @property
    def repository(self) -> UserRepository:
        return self._repository

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    async def _exists(self, lookup: Callable[[str], Awaitable[User]], value: str) -> bool:
        try:
            await lookup(value)
        except NotFoundError:
            return False
        return True

    async def _hash_password(self, password: str) -> str:
        try:
            return await to_thread.run_sync(self._hasher.hash, password)
        except HashingError as exc:
            raise CredentialError(str(exc)) from exc

    async def create_user(self, username: str, email: str, password: str, full_name: str) -> User:
        if await self._exists(self._repository.get_by_username, username):
            logger.warning("Rejected new account: username %r is taken", username)
            raise ConflictError(USERNAME_TAKEN)
        if await self._exists(self._repository.get_by_email, email):
            logger.warning("Rejected new account: email %r is registered", email)
            raise ConflictError(EMAIL_REGISTERED)

        candidate = await to_thread.run_sync(
            partial(new_user, username, email, password, full_name, hasher=self._hasher)
        )
        user = await self._repository.create(candidate)
        logger.info("Created user %s (%s)", user.id, user.username)
        return user

    async def get_user(self, user_id: int) -> User:
        return await self._repository.get_by_id(user_id)

    async def update_user(
        self,
        user_id: int,
        *,
        username: FieldUpdate = UNSET,
        email: FieldUpdate = UNSET,
        password: FieldUpdate = UNSET,
        full_name: FieldUpdate = UNSET,
    ) -> User:
        """Apply only the fields that were provided.

        ``UNSET`` means "leave unchanged"; any string, including ``""``, is a
        new value.
        """

        user = await self._repository.get_by_id(user_id)
        changed: List[str] = []

        if username is not UNSET and username != user.username:
            if await self._exists(self._repository.get_by_username, username):
                logger.warning("Rejected update of user %s: username %r is taken", user_id, username)
                raise ConflictError(USERNAME_TAKEN)
            user = replace(user, username=username)
            changed.append("username")

        if email is not UNSET and email != user.email:
            if await self._exists(self._repository.get_by_email, email):
                logger.warning("Rejected update of user %s: email %r is registered", user_id, email)
                raise ConflictError(EMAIL_REGISTERED)
            user = replace(user, email=email)
            changed.append("email")

        if password is not UNSET:
            user = replace(user, password_hash=await self._hash_password(password))
            changed.append("password")

        if full_name is not UNSET:
            user = replace(user, full_name=full_name)
            changed.append("full_name")

        updated = await self._repository.update(user)
        logger.info("Updated user %s (%s)", user_id, ", ".join(changed) or "no field changes")
        return updated

    async def delete_user(self, user_id: int) -> None:
        await self._repository.delete(user_id)
        logger.info("Deleted user %s", user_id)

    async def list_users(self, page: int, page_size: int) -> UserPage:
        page, page_size, offset = normalize_pagination(page, page_size)
        users, total = await self._repository.list(offset, page_size)
        return UserPage(users=users, total_count=total, page=page, page_size=page_size)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "UserPage",
    "UserService",
    "normalize_pagination",
]
