from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional


class ConnectionStatusResponse(BaseModel):
    connected: bool
    connecting: bool
    last_error: Optional[str] = None
    config: Dict[str, Any]
    metrics: Dict[str, Any]


class ConnectRequest(BaseModel):
    host: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)
    unit_id: Optional[int] = Field(None, ge=0, le=255)
    timeout: Optional[float] = Field(None, gt=0, description="Request timeout in seconds")
    reconnect_interval: Optional[float] = Field(None, ge=0, description="Delay before the retry in seconds")


class AuditLogEntryModel(BaseModel):
    id: str
    timestamp: str
    level: str
    message: str
    source: str
    details: Optional[Dict[str, Any]] = None


class LogsResponse(BaseModel):
    logs: List[AuditLogEntryModel]
    total: int


class AddLogRequest(BaseModel):
    level: Literal["INFO", "WARNING", "ERROR"] = "INFO"
    message: str = Field(..., min_length=1)
    source: str = "operator"
    details: Optional[Dict[str, Any]] = None


class EngineStartRequest(BaseModel):
    silent: bool = True


class EngineStatusResponse(BaseModel):
    state: str
    silent: bool
    cycle_count: int
    connection_healthy: bool
    heartbeat_active: bool


class Rule2StatusResponse(BaseModel):
    is_monitoring: bool
    trigger_state: bool
    last_executed_branch: Optional[str] = None
    description: str


class HeartbeatRequest(BaseModel):
    action: Literal["start", "stop"]


class HeartbeatStatusResponse(BaseModel):
    is_active: bool
    is_plc_connected: bool
    interval: float
    coil: str
    last_beat_time: Optional[str] = None
    beat_count: int
