from typing import Optional

from fastapi import APIRouter, Depends, Query

from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.dependencies import get_engine
from weld_control.app.models.audit import AuditLevel
from weld_control.app.schemas.common import ActionResponse
from weld_control.app.schemas.engine import (
    AddLogRequest,
    AuditLogEntryModel,
    ConnectionStatusResponse,
    ConnectRequest,
    LogsResponse,
    Rule2StatusResponse,
)
from weld_control.app.utilities.telemetry import logger

router = APIRouter(prefix="/plc", tags=["plc"])

DEFAULT_LOG_LIMIT = 50


def _status_response(engine: RuleEngine) -> ConnectionStatusResponse:
    connection = engine.connection
    return ConnectionStatusResponse(
        **connection.status.to_dict(),
        config=connection.config.describe(),
        metrics=connection.metrics.to_dict(),
    )


@router.get("/status", response_model=ConnectionStatusResponse)
async def get_status(engine: RuleEngine = Depends(get_engine)) -> ConnectionStatusResponse:
    """Connection status, reconciled against the live session first"""
    await engine.refresh_status()
    return _status_response(engine)


@router.post("/connect", response_model=ConnectionStatusResponse)
async def connect(request: Optional[ConnectRequest] = None,
                  engine: RuleEngine = Depends(get_engine)) -> ConnectionStatusResponse:
    """
    Connect to the PLC and start the rule engine.

    Fields left out of the body keep their current value. A failed connection
    (after the single retry) is reported as 503.
    """
    changes = request.model_dump(exclude_none=True) if request else {}
    config = engine.connection.config.updated(**changes)

    logger.info("Connect requested", extra={"component": "api", **config.describe()})
    await engine.connect(config)
    return _status_response(engine)


@router.delete("/connect", response_model=ActionResponse)
async def disconnect(engine: RuleEngine = Depends(get_engine)) -> ActionResponse:
    closed = await engine.disconnect()
    return ActionResponse(success=True, message="Disconnected" if closed else "Already disconnected")


@router.get("/logs", response_model=LogsResponse)
async def get_logs(limit: int = Query(DEFAULT_LOG_LIMIT, ge=1, le=100),
                   engine: RuleEngine = Depends(get_engine)) -> LogsResponse:
    entries = engine.logs(limit)
    return LogsResponse(
        logs=[AuditLogEntryModel(**entry.to_dict()) for entry in entries],
        total=len(engine.audit_log),
    )


@router.post("/logs", response_model=AuditLogEntryModel)
async def add_log(request: AddLogRequest, engine: RuleEngine = Depends(get_engine)) -> AuditLogEntryModel:
    entry = engine.audit_log.add(AuditLevel(request.level), request.message, request.source, request.details)
    return AuditLogEntryModel(**entry.to_dict())


@router.delete("/logs", response_model=ActionResponse)
async def clear_logs(engine: RuleEngine = Depends(get_engine)) -> ActionResponse:
    engine.audit_log.clear()
    return ActionResponse(success=True, message="Logs cleared")


@router.get("/rule2-status", response_model=Rule2StatusResponse)
async def rule2_status(engine: RuleEngine = Depends(get_engine)) -> Rule2StatusResponse:
    return Rule2StatusResponse(**engine.rule2_status())
