"""
Structured Logging Utilities

JSON-lines logging for the import gateway.  Records carry the fetch, sanitise
and store stage fields, URL credentials and secret-looking keys are masked, and
the dated log files plus their rotation backups are gzipped once quiet and
deleted after the retention window.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import re
import shutil
import sys
import uuid
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .settings import LoggingConfiguration

LOGGER_NAME = "ImportGateway"

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")
_STRUCTURED_FIELDS = (
    "stage",
    "correlation_id",
    "identifier",
    "url",
    "hostname",
    "status",
    "reason",
)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials, either
            as dedicated keys or embedded in URLs.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***` and URL userinfo is stripped.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    sensitive_keys = {"authorization", "api_key", "apikey", "token", "secret", "password"}
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in sensitive_keys:
            masked[key] = "***masked***"
        elif isinstance(value, str) and "apikey" in value.lower():
            masked[key] = "***masked***"
        elif isinstance(value, str):
            masked[key] = _URL_CREDENTIALS.sub(r"\g<scheme>***@", value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Create a short-lived identifier that links related log entries.

    Returns:
        Twelve character hexadecimal identifier suitable for correlating log
        events across one import attempt.

    Examples:
        >>> cid = generate_correlation_id()
        >>> len(cid)
        12
    """
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record into a JSON line.

        Args:
            record: Log record emitted by the gateway components.

        Returns:
            UTF-8 safe JSON string with masked secrets and correlation context.
        """
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _STRUCTURED_FIELDS:
            log_obj[field] = getattr(record, field, None)
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            log_obj.update(record.extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


_LOG_FILE_PREFIX = "import-gateway-"
_BACKUP_COUNT = 5
_QUIET_PERIOD = timedelta(days=1)


def _log_path_for(log_dir: Path, moment: datetime) -> Path:
    return log_dir / f"{_LOG_FILE_PREFIX}{moment:%Y%m%d}.jsonl"


def _gzip_in_place(path: Path) -> None:
    """Replace ``path`` with ``<name>.gz``, keeping its modification time."""

    target = path.with_name(path.name + ".gz")
    stat = path.stat()
    with path.open("rb") as source, gzip.open(target, "wb") as sink:
        shutil.copyfileobj(source, sink)
    os.utime(target, (stat.st_atime, stat.st_mtime))
    path.unlink()


def _prune_logs(log_dir: Path, retention_days: int, *, active: Path) -> None:
    """Expire and compress the files this module writes.

    That is the dated files and their numbered rotation backups
    (``import-gateway-YYYYMMDD.jsonl[.N][.gz]``).  Anything older than
    ``retention_days`` is deleted; plain files untouched for a day are gzipped.
    The file about to be opened is left alone.
    """

    now = datetime.now(timezone.utc)
    expiry = timedelta(days=retention_days)
    for path in sorted(log_dir.glob(f"{_LOG_FILE_PREFIX}*.jsonl*")):
        if path == active or not path.is_file():
            continue
        age = now - datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        if age > expiry:
            path.unlink(missing_ok=True)
        elif age > _QUIET_PERIOD and path.suffix != ".gz":
            _gzip_in_place(path)


def _managed(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler._import_gateway_managed = True  # type: ignore[attr-defined]
    return handler


def setup_logging(config: LoggingConfiguration, log_dir: Optional[Path] = None) -> logging.Logger:
    """Attach a console handler and a rotating JSON-lines file to the gateway logger.

    Handlers installed by an earlier call are closed and replaced.  Child
    loggers (``ImportGateway.*``) propagate into these handlers.
    """

    log_dir = Path(log_dir or config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = _log_path_for(log_dir, datetime.now(timezone.utc))
    _prune_logs(log_dir, config.retention_days, active=log_path)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    for handler in [h for h in logger.handlers if getattr(h, "_import_gateway_managed", False)]:
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(
        _managed(logging.StreamHandler(sys.stderr), logging.Formatter("%(levelname)s: %(message)s"))
    )
    logger.addHandler(
        _managed(
            RotatingFileHandler(
                log_path,
                maxBytes=config.max_log_size_mb * 1024 * 1024,
                backupCount=_BACKUP_COUNT,
                encoding="utf-8",
            ),
            JSONFormatter(),
        )
    )
    logger.propagate = True
    return logger


__all__ = [
    "LOGGER_NAME",
    "JSONFormatter",
    "setup_logging",
    "mask_sensitive_data",
    "generate_correlation_id",
]
