from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import pytest

from accounts.client import AccountsClientError, RemoteUser, RemoteUserPage
from accounts.config import Settings
from accounts.errors import NotFoundError
from accounts.models import UNSET
from main import _parse_args, _run_client_command

_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _remote_user(user_id: int = 1, username: str = "alice") -> RemoteUser:
    return RemoteUser(
        id=user_id,
        username=username,
        email=f"{username}@x.com",
        full_name="Alice A",
        created_at=_NOW,
        updated_at=_NOW,
    )


class FakeClient:
    def __init__(self, base_url: str, *, error: Exception | None = None) -> None:
        self.base_url = base_url
        self.error = error
        self.calls: List[Tuple[str, Tuple[Any, ...], Dict[str, Any]]] = []
        self.closed = False

    def __enter__(self) -> "FakeClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        if self.error is not None:
            raise self.error

    def create_user(self, username: str, email: str, password: str, full_name: str = "") -> RemoteUser:
        self._record("create_user", username, email, password, full_name)
        return _remote_user(username=username)

    def get_user(self, user_id: int) -> RemoteUser:
        self._record("get_user", user_id)
        return _remote_user(user_id)

    def update_user(self, user_id: int, **fields: Any) -> RemoteUser:
        self._record("update_user", user_id, **fields)
        return _remote_user(user_id)

    def delete_user(self, user_id: int) -> bool:
        self._record("delete_user", user_id)
        return True

    def list_users(self, page: int = 1, page_size: int = 10) -> RemoteUserPage:
        self._record("list_users", page, page_size)
        return RemoteUserPage(users=[_remote_user(1), _remote_user(2, "bob")], total_count=2, page=page, page_size=page_size)


class FakeClientFactory:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.instances: List[FakeClient] = []

    def __call__(self, base_url: str) -> FakeClient:
        client = FakeClient(base_url, error=self.error)
        self.instances.append(client)
        return client


def _run(argv: List[str], factory: FakeClientFactory, settings: Settings | None = None) -> int:
    return _run_client_command(_parse_args(argv), settings or Settings(), client_factory=factory)


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_init_db_subcommand_available() -> None:
    args = _parse_args(["init-db"])
    assert args.command == "init-db"


def test_client_subcommands_parse_arguments() -> None:
    args = _parse_args(["--service-url", "http://remote:9000", "update", "--id", "3", "--full-name", ""])

    assert args.command == "update"
    assert args.service_url == "http://remote:9000"
    assert args.user_id == 3
    assert args.full_name == ""
    assert args.username is None

    listing = _parse_args(["list", "--page", "2", "--page-size", "25"])
    assert (listing.page, listing.page_size) == (2, 25)


def test_create_uses_configured_service_url(capsys: pytest.CaptureFixture[str]) -> None:
    factory = FakeClientFactory()
    settings = Settings(service_url="http://configured:8081")

    code = _run(
        ["create", "--username", "alice", "--email", "alice@x.com", "--password", "pw123", "--full-name", "Alice A"],
        factory,
        settings,
    )

    assert code == 0
    client = factory.instances[0]
    assert client.base_url == "http://configured:8081"
    assert client.calls == [("create_user", ("alice", "alice@x.com", "pw123", "Alice A"), {})]
    assert client.closed
    assert "Created user #1: alice <alice@x.com>" in capsys.readouterr().out


def test_create_prompts_for_password(monkeypatch: pytest.MonkeyPatch) -> None:
    answers = iter(["secret", "different", "secret", "secret"])
    monkeypatch.setattr("main.getpass", lambda prompt: next(answers))
    factory = FakeClientFactory()

    code = _run(["create", "--username", "alice", "--email", "alice@x.com", "--full-name", "Alice A"], factory)

    assert code == 0
    assert factory.instances[0].calls[0][1][2] == "secret"


def test_update_sends_only_given_fields() -> None:
    factory = FakeClientFactory()

    code = _run(["update", "--id", "3", "--email", "new@x.com"], factory)

    assert code == 0
    _, args, fields = factory.instances[0].calls[0]
    assert args == (3,)
    assert fields == {"username": UNSET, "email": "new@x.com", "password": UNSET, "full_name": UNSET}


def test_update_without_fields_fails(capsys: pytest.CaptureFixture[str]) -> None:
    factory = FakeClientFactory()

    code = _run(["update", "--id", "3"], factory)

    assert code == 1
    assert factory.instances[0].calls == []
    assert "Nothing to update" in capsys.readouterr().err


def test_get_delete_and_list_print_results(capsys: pytest.CaptureFixture[str]) -> None:
    factory = FakeClientFactory()

    assert _run(["get", "--id", "1"], factory) == 0
    assert _run(["delete", "--id", "1"], factory) == 0
    assert _run(["list", "--page", "1", "--page-size", "2"], factory) == 0

    out = capsys.readouterr().out
    assert "Username:   alice" in out
    assert "Deleted user #1" in out
    assert "Page 1 (2 of 2 user(s)):" in out
    assert "bob@x.com" in out


@pytest.mark.parametrize(
    "error",
    [NotFoundError("user not found with ID 9"), AccountsClientError("Failed to contact account service")],
)
def test_errors_are_reported_with_exit_code(error: Exception, capsys: pytest.CaptureFixture[str]) -> None:
    factory = FakeClientFactory(error=error)

    code = _run(["get", "--id", "9"], factory)

    assert code == 1
    assert f"Error: {error}" in capsys.readouterr().err
