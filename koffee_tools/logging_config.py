"""Shared logging configuration utilities."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from koffee_tools.config.env import parse_bool_env


DEFAULT_JSON_ENV_KEYS = ("LOG_JSON", "LOG_FORMAT")

_CONTEXT_FIELDS = (
    ("migration", "MIGRATION_NAME"),
    ("collection", "FIRESTORE_COLLECTION"),
    ("run_id", "RUN_ID"),
)


def _should_use_json(env: Mapping[str, str]) -> bool:
    for key in DEFAULT_JSON_ENV_KEYS:
        if key in env:
            parsed = parse_bool_env(env.get(key))
            if parsed is not None:
                return parsed
    return False


def _resolve_context_value(record: logging.LogRecord, key: str, env_key: str) -> str:
    if hasattr(record, key):
        value = getattr(record, key)
        if value is not None:
            return str(value)
    env_value = os.getenv(env_key)
    return env_value if env_value is not None else ""


class JsonLogFormatter(logging.Formatter):
    """Formats logs as structured JSON with standard fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "message": record.getMessage(),
        }
        for key, env_key in _CONTEXT_FIELDS:
            payload[key] = _resolve_context_value(record, key, env_key)

        migration_error = self._resolve_migration_error(record)
        if migration_error is not None:
            payload["migration_error"] = migration_error
            payload["error_category"] = self._serialize_enum(migration_error.get("category"))
            payload["error_severity"] = self._serialize_enum(migration_error.get("severity"))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

    @staticmethod
    def _serialize_enum(value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    @staticmethod
    def _resolve_migration_error(record: logging.LogRecord) -> Optional[dict[str, Any]]:
        migration_error = getattr(record, "migration_error", None)
        if migration_error is None:
            return None
        if isinstance(migration_error, dict):
            return migration_error
        to_dict = getattr(migration_error, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        return {"detail": str(migration_error)}


class PlainTextFormatter(logging.Formatter):
    """Human-friendly formatter for console runs."""

    def format(self, record: logging.LogRecord) -> str:
        for key, env_key in _CONTEXT_FIELDS:
            setattr(record, key, _resolve_context_value(record, key, env_key))
        return super().format(record)


def init_logging(
    *,
    level: Optional[int] = None,
    json_enabled: Optional[bool] = None,
    stream: Optional[Any] = None,
) -> None:
    """Initialize shared logging configuration."""

    if level is None:
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if isinstance(level, str):
            level = logging.INFO

    if json_enabled is None:
        json_enabled = _should_use_json(os.environ)

    handler_stream = stream if stream is not None else sys.stdout
    handler = logging.StreamHandler(handler_stream)
    if json_enabled:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(
            PlainTextFormatter(
                "%(asctime)s %(levelname)s [%(migration)s] %(message)s"
            )
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)
