from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class ConnectionConfig:
    """Connection snapshot for the welding machine PLC"""
    host: str = "192.168.55.199"
    port: int = 502
    unit_id: int = 1  # slave id for operations
    timeout: float = 15.0  # seconds per request
    reconnect_interval: float = 8.0  # seconds before the single retry
    max_reconnect_attempts: int = field(default=1, init=False)

    def updated(self, **changes) -> "ConnectionConfig":
        """Return a new snapshot with the given fields replaced"""
        changes.pop("max_reconnect_attempts", None)
        return replace(self, **changes)

    def describe(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "unit_id": self.unit_id,
            "timeout": self.timeout,
            "reconnect_interval": self.reconnect_interval,
            "max_reconnect_attempts": self.max_reconnect_attempts,
        }
