"""Settings models, environment overrides, and YAML loading for the import gateway.

Configuration is split into small pydantic sections mirroring the runtime
collaborators: :class:`DownloadConfiguration` drives the fetch gate (timeout,
size ceiling, redirect budget, host allowlist), :class:`StorageSettings` points
the document store at its directory, :class:`LoggingConfiguration` controls the
structured log handlers, and :class:`ServerSettings` carries the bind address
used by ``import-gateway serve``.  :class:`GatewaySettings` composes them.

Values are resolved in three layers: model defaults, an optional YAML file,
then ``IMPORT_GATEWAY_*`` environment variables read through
``pydantic-settings``.  Settings are always passed explicitly into the store and
the gateway; :func:`get_default_settings` only memoises the defaults for
entry points that have nothing better to offer.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

__all__ = [
    "DATA_ROOT",
    "DEFAULT_TIMEOUT_SEC",
    "DEFAULT_MAX_BYTES",
    "DownloadConfiguration",
    "StorageSettings",
    "LoggingConfiguration",
    "ServerSettings",
    "GatewaySettings",
    "EnvironmentOverrides",
    "build_settings",
    "load_settings",
    "get_default_settings",
    "invalidate_default_settings_cache",
]

DATA_ROOT = Path(os.environ.get("IMPORT_GATEWAY_HOME", Path.home() / ".data" / "import-gateway"))
DEFAULT_TIMEOUT_SEC = 7.0
DEFAULT_MAX_BYTES = 500 * 1024
DEFAULT_USER_AGENT = "ImportGateway/1.0 (+svg-import)"

_DEFAULT_SETTINGS_LOCK = threading.Lock()
_DEFAULT_SETTINGS_CACHE: Optional["GatewaySettings"] = None


class DownloadConfiguration(BaseModel):
    """Fetch gate limits: deadline, size ceiling, redirect budget, and host allowlist."""

    timeout_sec: float = Field(default=DEFAULT_TIMEOUT_SEC, gt=0.0, le=120.0)
    max_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0)
    max_redirects: int = Field(default=5, ge=0, le=20)
    allowed_hosts: List[str] = Field(
        default_factory=list,
        description="Optional allowlist; entries starting with '.' or '*.' match subdomains",
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT)

    model_config = {"validate_assignment": True}

    @field_validator("allowed_hosts")
    @classmethod
    def validate_allowed_hosts(cls, value: List[str]) -> List[str]:
        """Lower-case allowlist entries and drop blanks."""

        normalized: List[str] = []
        for entry in value:
            candidate = str(entry).strip().lower()
            if not candidate:
                continue
            if "/" in candidate or ":" in candidate.lstrip("*."):
                raise ValueError(f"allowed_hosts entries must be bare hostnames: {entry!r}")
            normalized.append(candidate)
        return normalized

    def normalized_allowed_hosts(self) -> Optional[Tuple[Set[str], Set[str]]]:
        """Return ``(exact, suffixes)`` for the allowlist, or ``None`` when it is empty."""

        if not self.allowed_hosts:
            return None
        exact: Set[str] = set()
        suffixes: Set[str] = set()
        for entry in self.allowed_hosts:
            if entry.startswith("*."):
                suffixes.add(entry[2:])
            elif entry.startswith("."):
                suffixes.add(entry[1:])
            else:
                exact.add(entry)
        return exact, suffixes

    def polite_http_headers(self, *, correlation_id: Optional[str] = None) -> Dict[str, str]:
        """Headers attached to every outbound request."""

        headers = {"User-Agent": self.user_agent, "Accept": "image/svg+xml, application/xml;q=0.9, */*;q=0.1"}
        if correlation_id:
            headers["X-Request-ID"] = correlation_id
        return headers


class StorageSettings(BaseModel):
    """Location of the document store."""

    root: Path = Field(default=DATA_ROOT / "uploads")

    model_config = {"validate_assignment": True}

    @field_validator("root", mode="before")
    @classmethod
    def normalize_root(cls, value: object) -> Path:
        return Path(str(value)).expanduser()


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the gateway."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Path = Field(default=DATA_ROOT / "logs")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)


class GatewaySettings(BaseModel):
    """Top-level settings container."""

    http: DownloadConfiguration = Field(default_factory=DownloadConfiguration)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = {"validate_assignment": True}


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    timeout_sec: Optional[float] = None
    max_bytes: Optional[int] = None
    max_redirects: Optional[int] = None
    allowed_hosts: Optional[str] = None
    storage_dir: Optional[Path] = None
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None
    host: Optional[str] = None
    port: Optional[int] = None

    model_config = SettingsConfigDict(
        env_prefix="IMPORT_GATEWAY_", case_sensitive=False, extra="ignore"
    )


def _apply_env_overrides(settings: GatewaySettings) -> None:
    """Mutate ``settings`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("ImportGateway.settings")

    if env.timeout_sec is not None:
        settings.http.timeout_sec = env.timeout_sec
        logger.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
    if env.max_bytes is not None:
        settings.http.max_bytes = env.max_bytes
        logger.info("Config overridden: max_bytes=%s", env.max_bytes, extra={"stage": "config"})
    if env.max_redirects is not None:
        settings.http.max_redirects = env.max_redirects
        logger.info(
            "Config overridden: max_redirects=%s", env.max_redirects, extra={"stage": "config"}
        )
    if env.allowed_hosts is not None:
        settings.http.allowed_hosts = [
            part for part in env.allowed_hosts.split(",") if part.strip()
        ]
        logger.info(
            "Config overridden: allowed_hosts=%s",
            settings.http.allowed_hosts,
            extra={"stage": "config"},
        )
    if env.storage_dir is not None:
        settings.storage.root = env.storage_dir
        logger.info("Config overridden: storage_dir=%s", env.storage_dir, extra={"stage": "config"})
    if env.log_level is not None:
        settings.logging.level = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.log_dir is not None:
        settings.logging.log_dir = env.log_dir
    if env.host is not None:
        settings.server.host = env.host
    if env.port is not None:
        settings.server.port = env.port


def build_settings(raw: Optional[Mapping[str, object]] = None) -> GatewaySettings:
    """Materialise :class:`GatewaySettings` from a raw mapping plus environment overrides."""

    try:
        settings = GatewaySettings.model_validate(dict(raw or {}))
        _apply_env_overrides(settings)
    except ValidationError as exc:
        messages = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        raise ConfigError("Configuration validation failed:\n  " + "\n  ".join(messages)) from exc
    return settings


def load_settings(config_path: Path) -> GatewaySettings:
    """Read a YAML settings file and resolve it against the environment."""

    path = Path(config_path).expanduser()
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file '{path}' contains invalid YAML") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration file must contain a mapping at the root")
    return build_settings(data)


def get_default_settings(*, copy: bool = False) -> GatewaySettings:
    """Return memoised settings built from defaults and the environment."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None:
            _DEFAULT_SETTINGS_CACHE = build_settings()
        cached = _DEFAULT_SETTINGS_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_settings_cache() -> None:
    """Invalidate the cached default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None
