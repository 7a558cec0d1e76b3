from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from collections import deque


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionStatus:
    """
    Snapshot of the transport status.

    connected and connecting are never both true; instances are only built
    through ``from_state`` by the transport.
    """
    connected: bool = False
    connecting: bool = False
    last_error: Optional[str] = None

    def __post_init__(self):
        if self.connected and self.connecting:
            raise ValueError("connection status cannot be connected and connecting at once")

    @classmethod
    def from_state(cls, state: ConnectionState, last_error: Optional[str] = None) -> "ConnectionStatus":
        return cls(
            connected=state == ConnectionState.CONNECTED,
            connecting=state == ConnectionState.CONNECTING,
            last_error=last_error,
        )

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "connecting": self.connecting,
            "last_error": self.last_error,
        }


@dataclass()
class ConnectionMetrics:
    """Connection performance and reliability metrics"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    avg_response_time: float = 0.0
    last_successful_connection: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    response_times: deque = field(default_factory=lambda: deque(maxlen=100))

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "avg_response_time": round(self.avg_response_time, 4),
            "last_successful_connection": (
                self.last_successful_connection.isoformat() if self.last_successful_connection else None
            ),
            "last_error": self.last_error,
        }


@dataclass
class ModbusOperation:
    """
    Single Modbus request funnelled through the PLC connection.

    The address is the zero-based protocol address used on the wire;
    ``label`` keeps the PLC notation (e.g. "D2012") for log traceability.
    """
    operation_type: str      # 'read_holding', 'read_input', 'read_coil', 'read_discrete', 'write_*'
    address: int
    values: Optional[Any] = None
    count: int = 1
    label: Optional[str] = None


READ_OPERATIONS = ("read_holding", "read_input", "read_coil", "read_discrete")
WRITE_OPERATIONS = ("write_register", "write_registers", "write_coil", "write_coils")
ALL_OPERATIONS: List[str] = list(READ_OPERATIONS + WRITE_OPERATIONS)
