"""HTTP client for a running account service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .errors import ConflictError, NotFoundError
from .models import UNSET, FieldUpdate


class AccountsClientError(RuntimeError):
    """Raised when the service cannot be reached or rejects a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RemoteUser:
    id: int
    username: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RemoteUser":
        try:
            return cls(
                id=int(payload["id"]),
                username=str(payload["username"]),
                email=str(payload["email"]),
                full_name=str(payload.get("full_name") or ""),
                created_at=_parse_timestamp(payload["created_at"]),
                updated_at=_parse_timestamp(payload["updated_at"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AccountsClientError(f"Malformed user payload: {exc}") from exc


@dataclass(frozen=True)
class RemoteUserPage:
    users: List[RemoteUser]
    total_count: int
    page: int
    page_size: int


def _parse_timestamp(value: str) -> datetime:
    # Python < 3.11 does not accept the trailing "Z".
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Service base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


class AccountsClient:
    """Call the ``/api/v1/users`` endpoints of an account service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = _normalize_base_url(base_url)
        self._client = httpx.Client(
            base_url=f"{self._base_url}/api/v1",
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "AccountsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise AccountsClientError(f"Failed to contact account service: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        if response.status_code >= 400:
            message = _extract_error_message(payload, f"Service responded with {response.status_code}")
            if response.status_code == 404:
                raise NotFoundError(message)
            if response.status_code == 409:
                raise ConflictError(message)
            raise AccountsClientError(message, status_code=response.status_code)

        if not isinstance(payload, dict):
            raise AccountsClientError("Service returned an unexpected response format.")
        return payload

    def create_user(self, username: str, email: str, password: str, full_name: str = "") -> RemoteUser:
        payload = self._request(
            "POST",
            "/users",
            json={"username": username, "email": email, "password": password, "full_name": full_name},
        )
        return RemoteUser.from_payload(payload.get("user") or {})

    def get_user(self, user_id: int) -> RemoteUser:
        payload = self._request("GET", f"/users/{user_id}")
        return RemoteUser.from_payload(payload.get("user") or {})

    def update_user(
        self,
        user_id: int,
        *,
        username: FieldUpdate = UNSET,
        email: FieldUpdate = UNSET,
        password: FieldUpdate = UNSET,
        full_name: FieldUpdate = UNSET,
    ) -> RemoteUser:
        fields = {"username": username, "email": email, "password": password, "full_name": full_name}
        body = {name: value for name, value in fields.items() if value is not UNSET}
        payload = self._request("PATCH", f"/users/{user_id}", json=body)
        return RemoteUser.from_payload(payload.get("user") or {})

    def delete_user(self, user_id: int) -> bool:
        payload = self._request("DELETE", f"/users/{user_id}")
        return bool(payload.get("success"))

    def list_users(self, page: int = 1, page_size: int = 10) -> RemoteUserPage:
        payload = self._request("GET", "/users", params={"page": page, "page_size": page_size})
        users = [RemoteUser.from_payload(item) for item in payload.get("users") or []]
        return RemoteUserPage(
            users=users,
            total_count=int(payload.get("total_count", 0)),
            page=int(payload.get("page", page)),
            page_size=int(payload.get("page_size", page_size)),
        )


__all__ = ["AccountsClient", "AccountsClientError", "RemoteUser", "RemoteUserPage"]
