"""Settings loading and construction of the session stack from settings."""

from __future__ import annotations

import dataclasses
import datetime
import os
import pathlib
from typing import Any

import yaml

from workforce_session.store.base import KEY_SCHEMES, SessionStore

DEFAULT_CONFIG_PATH = pathlib.Path(__file__).resolve().parents[2] / "config" / "settings.yaml"


class ConfigError(Exception):
    """Raised when settings are missing or malformed."""


def parse_duration(value: str | int | float) -> datetime.timedelta:
    """Parse a Vault-style duration string.

    Examples: ``"30m"`` -> 30 minutes, ``"1h"`` -> 1 hour, ``"90"`` -> 90 s.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.timedelta(seconds=value)
    s = str(value).strip()
    try:
        if s.endswith("h"):
            return datetime.timedelta(hours=int(s[:-1]))
        if s.endswith("m"):
            return datetime.timedelta(minutes=int(s[:-1]))
        if s.endswith("s"):
            return datetime.timedelta(seconds=int(s[:-1]))
        return datetime.timedelta(seconds=int(s))
    except ValueError as exc:
        raise ConfigError(f"Invalid duration: {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class Settings:
    api_base_url: str = "http://localhost:3010"
    api_timeout_seconds: float = 30.0
    warning_window: datetime.timedelta = datetime.timedelta(minutes=30)
    store_backend: str = "file"
    store_path: str = "~/.workforce/session.json"
    key_scheme: str = "web"
    vault_address: str = "http://127.0.0.1:8200"
    vault_kv_mount: str = "secret"
    vault_secret_path: str = "workforce/session"


def load_settings(path: str | pathlib.Path | None = None) -> Settings:
    """Read ``settings.yaml`` and apply environment overrides.

    A missing file yields the defaults; ``WORKFORCE_API_URL`` and
    ``VAULT_ADDR`` win over the file.
    """
    config_path = pathlib.Path(path) if path is not None else DEFAULT_CONFIG_PATH
    raw: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as fh:
            raw = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a mapping")

    api_cfg = raw.get("api", {}) or {}
    session_cfg = raw.get("session", {}) or {}
    store_cfg = raw.get("store", {}) or {}
    vault_cfg = raw.get("vault", {}) or {}
    defaults = Settings()

    raw_timeout = api_cfg.get("timeout_seconds", defaults.api_timeout_seconds)
    try:
        if isinstance(raw_timeout, bool):
            raise TypeError(raw_timeout)
        api_timeout_seconds = float(raw_timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid api.timeout_seconds: {raw_timeout!r}") from exc

    settings = Settings(
        api_base_url=os.environ.get("WORKFORCE_API_URL")
        or api_cfg.get("base_url", defaults.api_base_url),
        api_timeout_seconds=api_timeout_seconds,
        warning_window=parse_duration(session_cfg.get("warning_window", "30m")),
        store_backend=store_cfg.get("backend", defaults.store_backend),
        store_path=store_cfg.get("path", defaults.store_path),
        key_scheme=store_cfg.get("key_scheme", defaults.key_scheme),
        vault_address=os.environ.get("VAULT_ADDR")
        or vault_cfg.get("address", defaults.vault_address),
        vault_kv_mount=vault_cfg.get("kv_mount", defaults.vault_kv_mount),
        vault_secret_path=vault_cfg.get("secret_path", defaults.vault_secret_path),
    )

    if settings.key_scheme not in KEY_SCHEMES:
        raise ConfigError(
            f"Unknown key_scheme '{settings.key_scheme}' (expected one of {sorted(KEY_SCHEMES)})"
        )
    if settings.store_backend not in ("memory", "file", "vault"):
        raise ConfigError(f"Unsupported store backend: {settings.store_backend}")
    if settings.warning_window <= datetime.timedelta(0):
        raise ConfigError("session.warning_window must be positive")
    return settings


def build_store(settings: Settings) -> SessionStore:
    """Construct the configured ``SessionStore``."""
    keys = KEY_SCHEMES[settings.key_scheme]
    if settings.store_backend == "memory":
        from workforce_session.store.local import MemorySessionStore

        return MemorySessionStore(keys=keys)
    if settings.store_backend == "file":
        from workforce_session.store.local import FileSessionStore

        return FileSessionStore(settings.store_path, keys=keys)
    if settings.store_backend == "vault":
        from workforce_session.store.vault_store import VaultSessionStore

        vault_token = os.environ.get("VAULT_TOKEN")
        if not vault_token:
            raise ConfigError(
                "The vault store backend needs a VAULT_TOKEN environment variable"
            )
        return VaultSessionStore(
            vault_addr=settings.vault_address,
            vault_token=vault_token,
            secret_path=settings.vault_secret_path,
            kv_mount=settings.vault_kv_mount,
            keys=keys,
        )
    raise ConfigError(f"Unsupported store backend: {settings.store_backend}")
