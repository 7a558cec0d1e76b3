from fastapi import APIRouter

from weld_control.app.schemas.common import RootResponse
from weld_control.app.api.v1.engine import router as engine_router
from weld_control.app.api.v1.plc import router as plc_router
from weld_control.app.api.v1.records import router as records_router
from weld_control.app.api.v1.registers import router as registers_router

API_VERSION = "1.0.0"

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include sub-routers
api_router.include_router(plc_router)
api_router.include_router(registers_router)
api_router.include_router(engine_router)
api_router.include_router(records_router)


@api_router.get("", response_model=RootResponse)
async def v1_root() -> RootResponse:
    """Root endpoint with API information"""
    return RootResponse(message="Weld Control API v1 is running", version=API_VERSION)
