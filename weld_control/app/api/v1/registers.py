from fastapi import APIRouter, Depends, Query

from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.dependencies import get_engine
from weld_control.app.schemas.register import (
    CoilReadResponse,
    CoilWriteRequest,
    FloatReadResponse,
    FloatWriteRequest,
    RegisterReadResponse,
    RegisterWriteRequest,
    WriteResponse,
)
from weld_control.app.utilities.telemetry import logger

router = APIRouter(prefix="/plc", tags=["registers"])


@router.get("/coils", response_model=CoilReadResponse)
async def read_coils(address: int = Query(..., ge=0, le=65535), count: int = Query(1, ge=1, le=2000),
                     engine: RuleEngine = Depends(get_engine)) -> CoilReadResponse:
    values = await engine.registers.read_coils(address, count)
    return CoilReadResponse(address=address, count=count, values=values)


@router.post("/coils", response_model=WriteResponse)
async def write_coil(request: CoilWriteRequest, engine: RuleEngine = Depends(get_engine)) -> WriteResponse:
    logger.info("Manual coil write", extra={"component": "api", "address": request.address, "value": request.value})
    await engine.registers.write_coil(request.address, request.value)
    return WriteResponse(success=True, address=request.address, value=float(request.value))


@router.get("/registers", response_model=RegisterReadResponse)
async def read_registers(address: int = Query(..., ge=0, le=65535), count: int = Query(1, ge=1, le=125),
                         engine: RuleEngine = Depends(get_engine)) -> RegisterReadResponse:
    values = await engine.registers.read_holding_registers(address, count)
    return RegisterReadResponse(address=address, count=count, values=values)


@router.post("/registers", response_model=WriteResponse)
async def write_registers(request: RegisterWriteRequest,
                          engine: RuleEngine = Depends(get_engine)) -> WriteResponse:
    logger.info("Manual register write", extra={
        "component": "api",
        "address": request.address,
        "count": len(request.values)
    })
    await engine.registers.write_holding_registers(request.address, request.values)
    return WriteResponse(success=True, address=request.address)


@router.get("/float32", response_model=FloatReadResponse)
async def read_float32(address: int = Query(..., ge=0, le=65534),
                       engine: RuleEngine = Depends(get_engine)) -> FloatReadResponse:
    return FloatReadResponse(address=address, value=await engine.registers.read_float32(address))


@router.post("/float32", response_model=WriteResponse)
async def write_float32(request: FloatWriteRequest, engine: RuleEngine = Depends(get_engine)) -> WriteResponse:
    logger.info("Manual float32 write", extra={"component": "api", "address": request.address, "value": request.value})
    if request.verify:
        value = await engine.verifier.write_and_verify(request.address, request.value, is_float=True,
                                                       description="manual write")
    else:
        await engine.registers.write_float32(request.address, request.value)
        value = request.value
    return WriteResponse(success=True, address=request.address, value=value)


@router.get("/float64", response_model=FloatReadResponse)
async def read_float64(address: int = Query(..., ge=0, le=65532),
                       engine: RuleEngine = Depends(get_engine)) -> FloatReadResponse:
    return FloatReadResponse(address=address, value=await engine.registers.read_float64(address))


@router.post("/float64", response_model=WriteResponse)
async def write_float64(request: FloatWriteRequest, engine: RuleEngine = Depends(get_engine)) -> WriteResponse:
    logger.info("Manual float64 write", extra={"component": "api", "address": request.address, "value": request.value})
    await engine.registers.write_float64(request.address, request.value)
    return WriteResponse(success=True, address=request.address, value=request.value)
