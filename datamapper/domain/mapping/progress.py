"""
Progress/log bus for the mapping pipeline.

One writer (the pipeline run) appends events; any number of subscribers are
called synchronously with the current snapshot. Subscribers must be cheap: a
sink that can stall is expected to decouple itself (for example through a
bounded queue, as the streaming endpoint does).
"""
from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from datamapper.core.config import settings
from datamapper.domain.mapping.models import LogLevel, ProgressEvent
from datamapper.utils.serialization import _make_json_safe

logger = logging.getLogger(__name__)
console_logger = logging.getLogger("datamapper.progress")

LEVEL_MARKERS = {
    LogLevel.INFO: "ℹ",
    LogLevel.SUCCESS: "✓",
    LogLevel.WARNING: "⚠",
    LogLevel.ERROR: "✗",
    LogLevel.PROGRESS: "↻",
    LogLevel.DATA: "▣",
}

_LOGGING_LEVELS = {
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class ProgressSnapshot:
    stage: str
    step: str
    percentage: float
    detail: Dict[str, Any] = field(default_factory=dict)
    current_log: Optional[ProgressEvent] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "step": self.step,
            "percentage": self.percentage,
            "details": self.detail,
            "currentLog": self.current_log.to_dict() if self.current_log else None,
        }


ProgressCallback = Callable[[ProgressSnapshot], None]


class ProgressBus:
    def __init__(self, log_limit: Optional[int] = None, console: bool = True):
        self._history: Deque[ProgressEvent] = deque(maxlen=log_limit or settings.progress_log_limit)
        self._subscribers: List[ProgressCallback] = []
        self._lock = threading.Lock()
        self._console = console
        self._stage = "Idle"
        self._step = ""
        self._percentage = 0.0
        self._detail: Dict[str, Any] = {}

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a subscriber; returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            stage=self._stage,
            step=self._step,
            percentage=self._percentage,
            detail=self._detail,
            current_log=self._history[-1] if self._history else None,
        )

    def history(self) -> List[ProgressEvent]:
        return list(self._history)

    def log(self, level: LogLevel, message: str, detail: Optional[Dict[str, Any]] = None) -> ProgressEvent:
        level = LogLevel(level)
        event = ProgressEvent(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            detail=_make_json_safe(detail or {}),
            stage=self._stage,
            step=self._step,
            percentage=self._percentage,
        )
        if self._console:
            self._write_console(event)
        self._history.append(event)
        self._publish(self.snapshot)
        return event

    def update_progress(
        self,
        stage: str,
        step: str,
        percentage: float,
        detail: Optional[Dict[str, Any]] = None,
    ) -> ProgressEvent:
        self._stage = stage
        self._step = step
        self._percentage = round(float(percentage), 1)
        self._detail = _make_json_safe(detail or {})
        return self.log(LogLevel.PROGRESS, f"{stage}: {step} ({self._percentage:.0f}%)", detail)

    def _write_console(self, event: ProgressEvent) -> None:
        marker = LEVEL_MARKERS.get(event.level, "•")
        console_logger.log(
            _LOGGING_LEVELS.get(event.level, logging.INFO),
            "%s %s",
            marker,
            event.message,
        )
        if event.detail and console_logger.isEnabledFor(logging.DEBUG):
            console_logger.debug("   %s", json.dumps(event.detail, indent=2, default=str))

    def _publish(self, snapshot: ProgressSnapshot) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception as exc:
                logger.warning("Progress subscriber failed: %s", exc)
