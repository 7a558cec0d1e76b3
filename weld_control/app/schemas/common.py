from pydantic import BaseModel
from typing import Optional


class RootResponse(BaseModel):
    message: str
    version: str


class ErrorDetail(BaseModel):
    error_type: str
    message: str
    address: Optional[int] = None
    source: Optional[str] = None
    timestamp: float


class ErrorResponse(BaseModel):
    detail: ErrorDetail


class ActionResponse(BaseModel):
    success: bool
    message: str
