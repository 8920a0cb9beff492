"""Structured event logging for interview sessions.

Every event is written twice: a compact ``key=value`` line for people
(console and ``*-human.log``) and, when file logs are enabled, one JSON
object per line for tooling (``LOG_FILE``).
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from datetime import datetime
from typing import Any

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_FILE_LOGS = os.getenv("ENABLE_FILE_LOGS", "1") in ("1", "true", "True")
LOG_FILE = os.getenv("LOG_FILE", "logs/interview-events.jsonl")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "5242880"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

HUMAN_KEYS = (
    "respondent_id",
    "study_name",
    "step_kind",
    "core_question_index",
    "decision",
    "outcome",
    "attempt",
    "error",
)

_events = logging.getLogger("interview_engine.events")
_events.setLevel(LOG_LEVEL)
_events.propagate = False


class _Channel(logging.Filter):  # Routes records to the human or the JSON sinks
    def __init__(self, json_lines: bool) -> None:
        super().__init__()
        self.json_lines = json_lines

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "is_json", False) is self.json_lines


def _attach(handler: logging.Handler, *, json_lines: bool) -> None:
    pattern = "%(message)s" if json_lines else "[%(asctime)s] %(levelname)s %(name)s :: %(message)s"
    handler.setLevel(LOG_LEVEL)
    handler.setFormatter(logging.Formatter(pattern, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(_Channel(json_lines))
    _events.addHandler(handler)


def _ensure_handlers() -> None:
    if _events.handlers:
        return
    _attach(logging.StreamHandler(stream=sys.stdout), json_lines=False)
    if not ENABLE_FILE_LOGS:
        return
    os.makedirs(os.path.dirname(LOG_FILE) or ".", exist_ok=True)
    stem, _ = os.path.splitext(LOG_FILE)
    for path, json_lines in ((LOG_FILE, True), (f"{stem}-human.log", False)):
        rotating = logging.handlers.RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
        _attach(rotating, json_lines=json_lines)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return str(value)


def _human_line(event: dict[str, Any]) -> str:
    pairs = [("session", event.get("session_id")), ("kind", event.get("kind"))]
    pairs.extend((key, event[key]) for key in HUMAN_KEYS if key in event)
    return " ".join(f"{key}={value}" for key, value in pairs)


def _write(level: int, message: str, *, is_json: bool) -> None:
    record = _events.makeRecord(_events.name, level, "", 0, message, (), None)
    record.is_json = is_json  # type: ignore[attr-defined]
    _events.handle(record)


def log_event(kind: str, session_id: str, *, level: int = logging.INFO, **fields: Any) -> dict[str, Any]:
    """Emit one session event and return its payload."""

    _ensure_handlers()
    event: dict[str, Any] = {"ts": time.time(), "trace": uuid.uuid4().hex, "kind": kind, "session_id": session_id, **fields}
    _write(level, _human_line(event), is_json=False)
    if ENABLE_FILE_LOGS:
        _write(level, json.dumps(event, ensure_ascii=False, default=_json_default), is_json=True)
    return event


__all__ = ["log_event"]
