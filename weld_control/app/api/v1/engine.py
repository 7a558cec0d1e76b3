from typing import Optional

from fastapi import APIRouter, Depends

from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.dependencies import get_engine
from weld_control.app.schemas.engine import (
    EngineStartRequest,
    EngineStatusResponse,
    HeartbeatRequest,
    HeartbeatStatusResponse,
)

router = APIRouter(tags=["engine"])


@router.post("/engine/start", response_model=EngineStatusResponse)
async def start_engine(request: Optional[EngineStartRequest] = None,
                       engine: RuleEngine = Depends(get_engine)) -> EngineStatusResponse:
    """Start polling; starting a running engine is a no-op"""
    engine.start(silent=request.silent if request else True)
    return EngineStatusResponse(**engine.engine_status())


@router.post("/engine/stop", response_model=EngineStatusResponse)
async def stop_engine(engine: RuleEngine = Depends(get_engine)) -> EngineStatusResponse:
    await engine.stop()
    return EngineStatusResponse(**engine.engine_status())


@router.get("/engine/status", response_model=EngineStatusResponse)
async def engine_status(engine: RuleEngine = Depends(get_engine)) -> EngineStatusResponse:
    return EngineStatusResponse(**engine.engine_status())


@router.get("/heartbeat", response_model=HeartbeatStatusResponse)
async def heartbeat_status(engine: RuleEngine = Depends(get_engine)) -> HeartbeatStatusResponse:
    return HeartbeatStatusResponse(**engine.heartbeat.status())


@router.post("/heartbeat", response_model=HeartbeatStatusResponse)
async def control_heartbeat(request: HeartbeatRequest,
                            engine: RuleEngine = Depends(get_engine)) -> HeartbeatStatusResponse:
    if request.action == "start":
        engine.heartbeat.start()
    else:
        await engine.heartbeat.stop()
    return HeartbeatStatusResponse(**engine.heartbeat.status())
