"""Configuration management for the booking service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .errors import DEFAULT_LOCALE, SUPPORTED_LOCALES

_DEFAULT_TOKEN_TTL = 3600
_DEFAULT_BUSY_TIMEOUT = 5.0


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service and its database."""

    database_path: Path
    token_secret: Optional[str] = None
    token_ttl_seconds: int = _DEFAULT_TOKEN_TTL
    default_locale: str = DEFAULT_LOCALE
    busy_timeout_seconds: float = _DEFAULT_BUSY_TIMEOUT

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        unknown = set(data.keys()) - {
            "database_path",
            "token_secret",
            "token_ttl_seconds",
            "default_locale",
            "busy_timeout_seconds",
        }
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db = data.get("database_path")
        if raw_db:
            database_path = _resolve_path(str(raw_db), base_path)
        else:
            database_path = default_database_path()

        secret = data.get("token_secret")
        return Settings(
            database_path=database_path,
            token_secret=str(secret) if secret else None,
            token_ttl_seconds=_positive_int(data.get("token_ttl_seconds", _DEFAULT_TOKEN_TTL), "token_ttl_seconds"),
            default_locale=_locale(data.get("default_locale", DEFAULT_LOCALE)),
            busy_timeout_seconds=_positive_float(
                data.get("busy_timeout_seconds", _DEFAULT_BUSY_TIMEOUT), "busy_timeout_seconds"
            ),
        )

    def require_token_secret(self) -> str:
        if not self.token_secret:
            raise ValueError(
                "Token secret is not configured. Set BOOKINGS_TOKEN_SECRET or token_secret in the config file."
            )
        return self.token_secret


def _resolve_path(raw: str, base_path: Path | None) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


def _positive_int(value: object, name: str) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if number <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return number


def _positive_float(value: object, name: str) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number") from exc
    if number <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return number


def _locale(value: object) -> str:
    locale = str(value).strip().lower()
    if locale not in SUPPORTED_LOCALES:
        raise ValueError(f"default_locale must be one of: {', '.join(SUPPORTED_LOCALES)}")
    return locale


def default_database_path() -> Path:
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "bookings.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "bookings.yaml").resolve(strict=False)


_ENV_OVERRIDES: Dict[str, str] = {
    "BOOKINGS_DB_PATH": "database_path",
    "BOOKINGS_TOKEN_SECRET": "token_secret",
    "BOOKINGS_TOKEN_TTL": "token_ttl_seconds",
    "BOOKINGS_DEFAULT_LOCALE": "default_locale",
    "BOOKINGS_BUSY_TIMEOUT": "busy_timeout_seconds",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from the YAML config file (if any) and the environment.

    Environment variables win over the file. A config path given through
    ``BOOKINGS_CONFIG`` must exist; the default location is optional.
    """

    env = os.environ if environ is None else environ
    explicit = env.get("BOOKINGS_CONFIG")
    config_path = resolve_config_path(explicit)

    raw: Dict[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        raw.update(loaded)
    elif explicit:
        raise ValueError(f"Configuration file {config_path} does not exist")

    settings = Settings.from_dict(raw, base_path=config_path.parent)

    overrides: Dict[str, object] = {}
    for variable, key in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value is None or not value.strip():
            continue
        overrides[key] = value.strip()

    if not overrides:
        return settings

    merged = Settings.from_dict(
        {
            "database_path": str(settings.database_path),
            "token_secret": settings.token_secret,
            "token_ttl_seconds": settings.token_ttl_seconds,
            "default_locale": settings.default_locale,
            "busy_timeout_seconds": settings.busy_timeout_seconds,
            **overrides,
        },
        base_path=Path.cwd(),
    )
    return merged


__all__ = ["Settings", "default_database_path", "load_settings", "resolve_config_path"]
