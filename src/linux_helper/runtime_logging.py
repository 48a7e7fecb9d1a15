"""Structured JSONL runtime logging for Linux Helper.

Every record is one JSON object per line. Loggers are immutable; ``bind``
returns a child that shares the parent's sink and adds context fields, so a
chat session can tag every record with its conversation id once.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, Mapping

from linux_helper.paths import state_root

LogLevel = Literal["off", "error", "warning", "info", "debug"]

LOG_LEVEL_ENV = "LINUX_HELPER_LOG_LEVEL"
LOG_FILE_ENV = "LINUX_HELPER_LOG_FILE"

_LEVEL_VALUES: dict[str, int] = {
    "off": 100,
    "error": 40,
    "warning": 30,
    "info": 20,
    "debug": 10,
}
_ALIASES = {"warn": "warning", "none": "off", "disabled": "off", "0": "off"}

_runtime_logger: "RuntimeLogger | None" = None


def parse_level(value: str | None, default: LogLevel = "warning") -> LogLevel:
    if not value:
        return default
    normalized = value.strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    if normalized not in _LEVEL_VALUES:
        return default
    return normalized  # type: ignore[return-value]


def resolve_log_file(path: str | Path | None) -> Path:
    if path is None:
        return state_root() / "logs" / "linux-helper.runtime.jsonl"
    return Path(path).expanduser().resolve()


@dataclass(slots=True)
class JsonlSink:
    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def write(self, record: Mapping[str, Any]) -> None:
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


@dataclass(slots=True, frozen=True)
class RuntimeLogger:
    level: LogLevel
    sink: JsonlSink | None = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def sink_path(self) -> Path | None:
        return self.sink.path if self.sink is not None else None

    def bind(self, **context: Any) -> RuntimeLogger:
        return replace(self, context={**self.context, **context})

    def enabled(self, level: str) -> bool:
        if self.sink is None:
            return False
        current = _LEVEL_VALUES.get(self.level, _LEVEL_VALUES["warning"])
        incoming = _LEVEL_VALUES.get(level, _LEVEL_VALUES["debug"])
        return incoming >= current and current < _LEVEL_VALUES["off"]

    def log(self, level: str, event: str, **fields: Any) -> None:
        if not self.enabled(level):
            return
        assert self.sink is not None
        self.sink.write(
            {
                "ts": datetime.now(UTC).isoformat(),
                "level": level,
                "event": event,
                "pid": os.getpid(),
                **self.context,
                **fields,
            }
        )

    def debug(self, event: str, **fields: Any) -> None:
        self.log("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.log("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.log("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.log("error", event, **fields)


def configure_runtime_logging(
    *,
    level: str | None = None,
    log_file: str | Path | None = None,
) -> RuntimeLogger:
    """Install the process-wide logger.

    Explicit arguments win over ``LINUX_HELPER_LOG_LEVEL`` and
    ``LINUX_HELPER_LOG_FILE``. Level ``off`` installs a logger without a sink.
    """
    global _runtime_logger

    effective_level = parse_level(level or os.getenv(LOG_LEVEL_ENV), default="warning")
    if effective_level == "off":
        _runtime_logger = RuntimeLogger(level="off")
        return _runtime_logger

    effective_file = resolve_log_file(log_file or os.getenv(LOG_FILE_ENV))
    _runtime_logger = RuntimeLogger(level=effective_level, sink=JsonlSink(effective_file))
    _runtime_logger.info(
        "logging.configured",
        configured_level=effective_level,
        sink_path=str(effective_file),
    )
    return _runtime_logger


def get_runtime_logger() -> RuntimeLogger:
    if _runtime_logger is None:
        return configure_runtime_logging()
    return _runtime_logger
