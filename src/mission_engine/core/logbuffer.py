from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Optional

LogSink = Callable[[str, str], None]


class LogBuffer(logging.Handler):
    """Keeps the most recent log records in memory for the operator console.

    When a ``sink`` is attached every record is also forwarded to it
    on the emitting thread, so it must not block. Sink failures are ignored;
    the in-memory copy is always kept.
    """

    def __init__(self, capacity: int = 1000, sink: Optional[LogSink] = None, level: int = logging.INFO):
        super().__init__(level=level)
        self._entries: deque[dict[str, Any]] = deque(maxlen=max(int(capacity), 1))
        self._entries_lock = threading.Lock()
        self._sink = sink
        self._in_sink = threading.local()

    def set_sink(self, sink: Optional[LogSink]) -> None:
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": _level_name(record.levelno),
            "message": message,
            "logger": record.name,
        }
        with self._entries_lock:
            self._entries.append(entry)

        sink = self._sink
        if sink is None or getattr(self._in_sink, "active", False):
            return
        self._in_sink.active = True
        try:
            sink(entry["level"], message)
        except Exception:
            pass
        finally:
            self._in_sink.active = False

    def recent(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        with self._entries_lock:
            entries = list(self._entries)
        if limit is not None:
            entries = entries[-max(int(limit), 0):] if limit else []
        return entries

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def _level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBUG"
