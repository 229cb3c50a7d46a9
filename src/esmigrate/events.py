"""Error sink: one channel collecting recoverable failures from every stage."""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    PROVISION = "provision"
    SCROLL = "scroll"
    DECODE = "decode"
    VALIDATE = "validate"
    ENCODE = "encode"
    BULK = "bulk"


@dataclass(frozen=True)
class ErrorEvent:
    """A single reported failure."""
    stage: Stage
    message: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


_CLOSE = object()


class ErrorSink:
    """Unbounded error channel drained by a dedicated consumer thread.

    ``report()`` never blocks, so it is safe to call from the reader and from
    any writer worker. Events are only logged; nothing is retried.
    """

    def __init__(self, history_size: int = 50) -> None:
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._history: deque[ErrorEvent] = deque(maxlen=history_size)
        self._count = 0
        self._thread: threading.Thread | None = None

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def report(self, stage: Stage, message: str) -> ErrorEvent:
        event = ErrorEvent(stage=stage, message=message)
        with self._lock:
            self._count += 1
            self._history.append(event)
        self._queue.put(event)
        return event

    def recent(self, limit: int = 20) -> list[ErrorEvent]:
        """Return the most recent events, newest first."""
        with self._lock:
            items = list(self._history)
        items.reverse()
        return items[:limit]

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._consume, name="error-sink", daemon=True)
        self._thread.start()

    def close(self, timeout: float | None = None) -> None:
        """Log anything still queued and stop the consumer."""
        if self._thread is None:
            return
        self._queue.put(_CLOSE)
        self._thread.join(timeout=timeout)
        self._thread = None

    def _consume(self) -> None:
        while True:
            event = self._queue.get()
            if event is _CLOSE:
                return
            logger.error("[%s] %s", event.stage.value, event.message)
