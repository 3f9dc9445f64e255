"""
Operator notifications: short-lived messages that dismiss themselves.

Each notification owns a timer; closing it by hand cancels the timer.
Active notifications stack top to bottom, offset by their position.
"""
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import pos_config as cfg

logger = logging.getLogger(__name__)

SEVERITIES = ("success", "error", "warning", "info")
_LOG_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
STACK_TOP_PX = 20
STACK_STEP_PX = 80


class NotificationChannel:
    def __init__(self, default_duration_ms: Optional[int] = None,
                 timer_factory: Optional[Callable[..., Any]] = None):
        self.default_duration_ms = cfg.NOTIFY_DURATION_MS if default_duration_ms is None else default_duration_ms
        self._timer_factory = timer_factory or threading.Timer
        self._ids = itertools.count(1)
        self._items: List[Dict[str, Any]] = []
        self._timers: Dict[int, Any] = {}
        self._lock = threading.Lock()

    def notify(self, message: str, severity: str = "info", duration_ms: Optional[int] = None) -> Dict[str, Any]:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity {severity!r}")
        duration = duration_ms if duration_ms and duration_ms > 0 else self.default_duration_ms
        note = {
            "id": next(self._ids),
            "message": str(message),
            "severity": severity,
            "duration_ms": duration,
        }
        logger.log(_LOG_LEVELS[severity], "[%s] %s", severity, note["message"])
        timer = None
        if duration:
            timer = self._timer_factory(duration / 1000.0, self._expire, args=(note["id"],))
            timer.daemon = True
        with self._lock:
            self._items.append(note)
            if timer is not None:
                self._timers[note["id"]] = timer
        if timer is not None:
            timer.start()
        return dict(note)

    def success(self, message: str, duration_ms: Optional[int] = None) -> Dict[str, Any]:
        return self.notify(message, "success", duration_ms)

    def error(self, message: str, duration_ms: Optional[int] = None) -> Dict[str, Any]:
        return self.notify(message, "error", duration_ms)

    def warning(self, message: str, duration_ms: Optional[int] = None) -> Dict[str, Any]:
        return self.notify(message, "warning", duration_ms)

    def info(self, message: str, duration_ms: Optional[int] = None) -> Dict[str, Any]:
        return self.notify(message, "info", duration_ms)

    def _remove(self, note_id: int):
        with self._lock:
            before = len(self._items)
            self._items = [n for n in self._items if n["id"] != note_id]
            timer = self._timers.pop(note_id, None)
            return len(self._items) != before, timer

    def _expire(self, note_id: int) -> None:
        self._remove(note_id)

    def dismiss(self, note_id: int) -> bool:
        """Explicit close: drop the notification and cancel its pending auto-dismiss."""
        removed, timer = self._remove(note_id)
        if timer is not None:
            timer.cancel()
        return removed

    def active(self) -> List[Dict[str, Any]]:
        with self._lock:
            items = [dict(n) for n in self._items]
        for index, note in enumerate(items):
            note["index"] = index
            note["offset_px"] = STACK_TOP_PX + index * STACK_STEP_PX
        return items

    def clear(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._items = []
        for timer in timers:
            timer.cancel()
