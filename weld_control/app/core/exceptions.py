from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import time

from pymodbus.exceptions import ModbusException

from weld_control.app.core.engine_exceptions import (
    EngineError, ConfigurationError, ConnectionError, EncodingError,
    ProtocolValidationError, RecordNotFoundError, VerificationError
)
from weld_control.app.utilities.telemetry import logger

from weld_control.app.schemas.common import ErrorDetail, ErrorResponse

# Map exception types to HTTP status codes
STATUS_CODE_MAP = {
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConnectionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProtocolValidationError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EncodingError: 422,
    VerificationError: status.HTTP_409_CONFLICT,
    RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    EngineError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: EngineError) -> int:
    """Most specific mapped status code along the exception's class hierarchy"""
    for cls in type(exc).__mro__:
        if cls in STATUS_CODE_MAP:
            return STATUS_CODE_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Setup custom exception handlers for the FastAPI app"""

    @app.exception_handler(EngineError)
    async def engine_exception_handler(request: Request, exc: EngineError):
        """Handle rule engine exceptions with appropriate HTTP status codes"""
        status_code = status_code_for(exc)

        error_detail = ErrorDetail(
            error_type=type(exc).__name__,
            message=str(exc),
            address=exc.address,
            source=exc.source,
            timestamp=time.time()
        )

        logger.error("Request failed with engine error", extra={
            "component": "api",
            "error_type": error_detail.error_type,
            "error": error_detail.message,
            "address": error_detail.address,
            "status_code": status_code,
            "request_path": request.url.path
        })

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(detail=error_detail).model_dump()
        )

    @app.exception_handler(ModbusException)
    async def modbus_exception_handler(request: Request, exc: ModbusException):
        """PLC rejected or did not answer the request"""
        error_detail = ErrorDetail(
            error_type=type(exc).__name__,
            message=str(exc),
            timestamp=time.time()
        )

        logger.error("Request failed with Modbus error", extra={
            "component": "api",
            "error": str(exc),
            "request_path": request.url.path
        })

        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=ErrorResponse(detail=error_detail).model_dump()
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        error_detail = ErrorDetail(
            error_type="ValueError",
            message=str(exc),
            timestamp=time.time()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(detail=error_detail).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions gracefully"""
        error_detail = ErrorDetail(
            error_type="InternalServerError",
            message="An unexpected error occurred",
            timestamp=time.time()
        )

        logger.error("Unexpected error", extra={
            "component": "api",
            "error": str(exc),
            "request_path": request.url.path,
            "request_method": request.method
        }, exc_info=True)

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(detail=error_detail).model_dump()
        )
