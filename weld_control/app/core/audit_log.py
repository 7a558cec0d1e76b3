import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from weld_control.app.models.audit import AuditLevel, AuditLogEntry
from weld_control.app.utilities.telemetry import logger

MAX_AUDIT_ENTRIES = 100

_PYTHON_LEVELS = {
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARNING: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
}

AuditListener = Callable[[AuditLogEntry], None]


class AuditLog:
    """
    Bounded, newest-first record of engine events shown to operators.

    Every entry is also mirrored to the application logger. Listeners are
    called synchronously after an entry is stored; a failing listener is
    logged and otherwise ignored so it cannot break the caller.
    """

    def __init__(self, capacity: int = MAX_AUDIT_ENTRIES):
        self._entries: deque = deque(maxlen=capacity)
        self._listeners: List[AuditListener] = []

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, level: Union[AuditLevel, str], message: str, source: str,
            details: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        level = AuditLevel(level) if isinstance(level, str) else level
        entry = AuditLogEntry(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(),
            level=level,
            message=message,
            source=source,
            details=dict(details) if details else None,
        )
        self._entries.appendleft(entry)

        logger.log(_PYTHON_LEVELS[level], message, extra={
            "component": "audit_log",
            "source": source,
            "details": entry.details
        })

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                logger.warning("Audit listener failed", extra={
                    "component": "audit_log",
                    "error": str(e)
                })
        return entry

    def info(self, message: str, source: str, details: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        return self.add(AuditLevel.INFO, message, source, details)

    def warning(self, message: str, source: str, details: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        return self.add(AuditLevel.WARNING, message, source, details)

    def error(self, message: str, source: str, details: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        return self.add(AuditLevel.ERROR, message, source, details)

    def entries(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        """Snapshot of the newest entries first, optionally limited"""
        snapshot = list(self._entries)
        if limit is not None:
            if limit < 0:
                raise ValueError("limit must be non-negative")
            snapshot = snapshot[:limit]
        return snapshot

    def clear(self) -> None:
        self._entries.clear()
        self.info("Logs cleared", source="audit_log")

    def subscribe(self, listener: AuditListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
