from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class AuditLevel(Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class AuditLogEntry:
    """Single operator-visible event; never mutated after creation"""
    id: str
    timestamp: datetime
    level: AuditLevel
    message: str
    source: str
    details: Optional[Dict[str, Any]] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "details": self.details,
        }
