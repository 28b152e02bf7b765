"""FastAPI application that exposes the account service over HTTP."""
from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import Settings, load_settings
from .database import SQLITE_MAX_INTEGER, Database
from .errors import AccountsError, ConflictError, CredentialError, NotFoundError, StorageError
from .hashing import PasswordHasher
from .models import User
from .service import DEFAULT_PAGE_SIZE, UserService

logger = logging.getLogger("accounts.api")

API_PREFIX = "/api/v1"

_ERROR_STATUS: Dict[type, int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    CredentialError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _normalize_username(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        raise ValueError("username must not be empty")
    return stripped


def _normalize_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    local, _, domain = stripped.partition("@")
    if not local or not domain:
        raise ValueError("email must be a valid address")
    return stripped


def _check_password_text(value: Optional[str]) -> Optional[str]:
    if value is not None and "\x00" in value:
        raise ValueError("password must not contain NUL characters")
    return value


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)
    full_name: str = Field(default="", max_length=255)

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        return _normalize_username(value)  # type: ignore[return-value]

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _normalize_email(value)  # type: ignore[return-value]

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _check_password_text(value)  # type: ignore[return-value]


class UpdateUserRequest(BaseModel):
    """Partial update: only keys present in the JSON body are applied."""

    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = Field(default=None, min_length=1, max_length=64)
    email: Optional[str] = Field(default=None, min_length=3, max_length=254)
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_username(value)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_text(value)

    @model_validator(mode="after")
    def _reject_explicit_null(self):  # type: ignore[override]
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} must not be null")
        return self

    def changes(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class UserPayload(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime


class UserResponse(BaseModel):
    user: UserPayload


class DeleteUserResponse(BaseModel):
    success: bool


class ListUsersResponse(BaseModel):
    users: List[UserPayload]
    total_count: int
    page: int
    page_size: int


def user_to_payload(user: User) -> UserPayload:
    return UserPayload(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _trusted_proxy_hosts() -> list[str] | str:
    raw = os.getenv("ACCOUNTS_TRUSTED_PROXIES")
    if not raw:
        return "*"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "*"


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "invalid value"))
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def build_service(settings: Settings) -> UserService:
    """Create a :class:`UserService` backed by the configured SQLite file."""

    database = Database(settings.database_path)
    database.initialize()
    return UserService(database, hasher=PasswordHasher(rounds=settings.bcrypt_rounds))


def create_app(
    *,
    service: UserService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if service is None:
        service = build_service(settings)

    app = FastAPI(
        title="User Accounts",
        description="Create, read, update, delete and list user accounts",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "Content-Length", "Accept-Encoding", "Authorization"],
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())
    app.state.service = service

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        client = request.client.host if request.client else "-"
        logger.info(
            "[%s] %s %s %s %.3fs",
            request.method,
            request.url.path,
            client,
            response.status_code,
            time.perf_counter() - started,
        )
        return response

    def get_service() -> UserService:
        return service

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    router = APIRouter(prefix=f"{API_PREFIX}/users")

    @router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(
        payload: CreateUserRequest,
        svc: UserService = Depends(get_service),
    ) -> UserResponse:
        user = await svc.create_user(payload.username, payload.email, payload.password, payload.full_name)
        return UserResponse(user=user_to_payload(user))

    @router.get("", response_model=ListUsersResponse)
    async def list_users(
        page: int = Query(default=1, le=SQLITE_MAX_INTEGER),
        page_size: int = Query(default=DEFAULT_PAGE_SIZE, le=SQLITE_MAX_INTEGER),
        svc: UserService = Depends(get_service),
    ) -> ListUsersResponse:
        result = await svc.list_users(page, page_size)
        return ListUsersResponse(
            users=[user_to_payload(user) for user in result.users],
            total_count=result.total_count,
            page=result.page,
            page_size=result.page_size,
        )

    @router.get("/{user_id}", response_model=UserResponse)
    async def read_user(
        user_id: int = Path(..., ge=1, le=SQLITE_MAX_INTEGER),
        svc: UserService = Depends(get_service),
    ) -> UserResponse:
        user = await svc.get_user(user_id)
        return UserResponse(user=user_to_payload(user))

    @router.patch("/{user_id}", response_model=UserResponse)
    async def update_user(
        payload: UpdateUserRequest,
        user_id: int = Path(..., ge=1, le=SQLITE_MAX_INTEGER),
        svc: UserService = Depends(get_service),
    ) -> UserResponse:
        user = await svc.update_user(user_id, **payload.changes())
        return UserResponse(user=user_to_payload(user))

    @router.delete("/{user_id}", response_model=DeleteUserResponse)
    async def delete_user(
        user_id: int = Path(..., ge=1, le=SQLITE_MAX_INTEGER),
        svc: UserService = Depends(get_service),
    ) -> DeleteUserResponse:
        await svc.delete_user(user_id)
        return DeleteUserResponse(success=True)

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _format_validation_errors(exc)},
        )

    @app.exception_handler(AccountsError)
    async def handle_accounts_error(request: Request, exc: AccountsError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, code in _ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = code
                break
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return app


__all__ = ["API_PREFIX", "build_service", "create_app", "user_to_payload"]
