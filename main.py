"""Command-line interface for the user account service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Callable, Dict, Sequence

from accounts.client import AccountsClient, AccountsClientError, RemoteUser
from accounts.config import Settings, load_settings
from accounts.database import Database
from accounts.errors import AccountsError
from accounts.models import UNSET

logger = logging.getLogger("accounts.main")

CLIENT_COMMANDS = {"create", "get", "update", "delete", "list"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User account service utilities")
    parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running account service (default: ACCOUNTS_SERVICE_URL or http://localhost:8081)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the account database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP account service")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=None, help="Port for the HTTP API (default: 8081)")

    create_parser = subparsers.add_parser("create", help="Create a user")
    create_parser.add_argument("--username", required=True)
    create_parser.add_argument("--email", required=True)
    create_parser.add_argument("--password", default=None, help="Prompted for when omitted")
    create_parser.add_argument("--full-name", dest="full_name", required=True)

    get_parser = subparsers.add_parser("get", help="Show a user")
    get_parser.add_argument("--id", dest="user_id", type=int, required=True)

    update_parser = subparsers.add_parser("update", help="Change selected fields of a user")
    update_parser.add_argument("--id", dest="user_id", type=int, required=True)
    update_parser.add_argument("--username", default=None)
    update_parser.add_argument("--email", default=None)
    update_parser.add_argument("--password", default=None)
    update_parser.add_argument("--full-name", dest="full_name", default=None)

    delete_parser = subparsers.add_parser("delete", help="Delete a user")
    delete_parser.add_argument("--id", dest="user_id", type=int, required=True)

    list_parser = subparsers.add_parser("list", help="List users page by page")
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--page-size", dest="page_size", type=int, default=10)

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", *CLIENT_COMMANDS}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help") or first == "--service-url" or first.startswith("--service-url="):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, host: str | None, port: int | None) -> None:
    from accounts.api import create_app
    from accounts.hashing import PasswordHasher
    from accounts.service import UserService
    import uvicorn

    host = host or settings.host
    port = port or settings.port

    database = _initialise_database(settings)
    service = UserService(database, hasher=PasswordHasher(rounds=settings.bcrypt_rounds))

    logger.info("Starting account service on http://%s:%s", host, port)
    app = create_app(service=service, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _print_user(user: RemoteUser) -> None:
    print(f"ID:         {user.id}")
    print(f"Username:   {user.username}")
    print(f"Email:      {user.email}")
    print(f"Full name:  {user.full_name}")
    print(f"Created at: {user.created_at.isoformat()}")
    print(f"Updated at: {user.updated_at.isoformat()}")


def _create(client: AccountsClient, args: argparse.Namespace) -> int:
    password = args.password or _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1
    user = client.create_user(args.username, args.email, password, args.full_name)
    print(f"Created user #{user.id}: {user.username} <{user.email}>")
    return 0


def _get(client: AccountsClient, args: argparse.Namespace) -> int:
    _print_user(client.get_user(args.user_id))
    return 0


def _update(client: AccountsClient, args: argparse.Namespace) -> int:
    fields = {
        name: value if value is not None else UNSET
        for name, value in (
            ("username", args.username),
            ("email", args.email),
            ("password", args.password),
            ("full_name", args.full_name),
        )
    }
    if all(value is UNSET for value in fields.values()):
        print("Nothing to update: pass at least one of --username, --email, --password, --full-name.", file=sys.stderr)
        return 1
    user = client.update_user(args.user_id, **fields)
    print(f"Updated user #{user.id}: {user.username} <{user.email}>")
    return 0


def _delete(client: AccountsClient, args: argparse.Namespace) -> int:
    client.delete_user(args.user_id)
    print(f"Deleted user #{args.user_id}")
    return 0


def _list(client: AccountsClient, args: argparse.Namespace) -> int:
    result = client.list_users(args.page, args.page_size)
    if not result.users:
        print(f"No users on page {result.page} ({result.total_count} total).")
        return 0

    print(f"Page {result.page} ({len(result.users)} of {result.total_count} user(s)):")
    print(f"{'ID':>4}  {'Username':<20}  {'Email':<32}  Full name")
    print("-" * 80)
    for user in result.users:
        print(f"{user.id:>4}  {user.username:<20}  {user.email:<32}  {user.full_name}")
    return 0


_HANDLERS: Dict[str, Callable[[AccountsClient, argparse.Namespace], int]] = {
    "create": _create,
    "get": _get,
    "update": _update,
    "delete": _delete,
    "list": _list,
}


def _run_client_command(
    args: argparse.Namespace,
    settings: Settings,
    *,
    client_factory: Callable[[str], AccountsClient] = AccountsClient,
) -> int:
    service_url = args.service_url or settings.service_url
    handler = _HANDLERS[args.command]
    try:
        with client_factory(service_url) as client:
            return handler(client, args)
    except (AccountsError, AccountsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()

    if args.command == "serve":
        _serve(settings=settings, host=getattr(args, "host", None), port=getattr(args, "port", None))
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")
    elif args.command in CLIENT_COMMANDS:
        return _run_client_command(args, settings)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
