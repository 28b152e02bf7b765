"""Configuration management for the account service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_database_path
from .hashing import DEFAULT_ROUNDS, MAX_ROUNDS, MIN_ROUNDS

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _parse_int(value: object, name: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _parse_origins(value: object) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError("cors_origins must be a list of strings or a comma-separated string")
    return tuple(item.strip() for item in items if item.strip())


def _resolve_path(raw: str, base_path: Path | None) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service, its database and the CLI client."""

    host: str = "0.0.0.0"
    port: int = 8081
    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    bcrypt_rounds: int = DEFAULT_ROUNDS
    cors_origins: Tuple[str, ...] = ("*",)
    service_url: str = "http://localhost:8081"

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if not MIN_ROUNDS <= self.bcrypt_rounds <= MAX_ROUNDS:
            raise ValueError(
                f"bcrypt_rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {self.bcrypt_rounds}"
            )

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from the parsed YAML document."""

        def _section(name: str) -> Mapping[str, object]:
            section = data.get(name) or {}
            if not isinstance(section, Mapping):
                raise ValueError(f"Configuration section '{name}' must be a mapping")
            return section

        server = _section("server")
        database = _section("database")
        security = _section("security")
        client = _section("client")

        values: Dict[str, object] = {}
        if "host" in server:
            values["host"] = str(server["host"])
        if "port" in server:
            values["port"] = _parse_int(server["port"], "server.port")
        if "cors_origins" in server:
            values["cors_origins"] = _parse_origins(server["cors_origins"])
        if database.get("path"):
            values["database_path"] = _resolve_path(str(database["path"]), base_path)
        if "bcrypt_rounds" in security:
            values["bcrypt_rounds"] = _parse_int(security["bcrypt_rounds"], "security.bcrypt_rounds")
        if client.get("service_url"):
            values["service_url"] = str(client["service_url"]).strip().rstrip("/")

        return Settings(**values)  # type: ignore[arg-type]

    def with_environment(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with ``ACCOUNTS_*`` environment overrides applied."""

        values: Dict[str, object] = {}
        if environ.get("ACCOUNTS_HOST"):
            values["host"] = environ["ACCOUNTS_HOST"].strip()
        if environ.get("ACCOUNTS_PORT"):
            values["port"] = _parse_int(environ["ACCOUNTS_PORT"], "ACCOUNTS_PORT")
        if environ.get("ACCOUNTS_DB_PATH"):
            values["database_path"] = resolve_database_path(environ["ACCOUNTS_DB_PATH"])
        if environ.get("ACCOUNTS_BCRYPT_ROUNDS"):
            values["bcrypt_rounds"] = _parse_int(environ["ACCOUNTS_BCRYPT_ROUNDS"], "ACCOUNTS_BCRYPT_ROUNDS")
        if environ.get("ACCOUNTS_CORS_ORIGINS"):
            values["cors_origins"] = _parse_origins(environ["ACCOUNTS_CORS_ORIGINS"])
        if environ.get("ACCOUNTS_SERVICE_URL"):
            values["service_url"] = environ["ACCOUNTS_SERVICE_URL"].strip().rstrip("/")
        return replace(self, **values) if values else self  # type: ignore[arg-type]


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (_PROJECT_ROOT / "config" / "accounts.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides.

    An explicitly requested file, via ``config_path`` or ``ACCOUNTS_CONFIG``,
    must exist. The default location is optional.
    """
    env = os.environ if environ is None else environ
    explicit = config_path is not None or bool(env.get("ACCOUNTS_CONFIG"))
    path = config_path if config_path is not None else resolve_config_path(env.get("ACCOUNTS_CONFIG"))

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        settings = Settings.from_dict(raw, base_path=path.parent)
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {path}")
    else:
        settings = Settings()

    return settings.with_environment(env)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
