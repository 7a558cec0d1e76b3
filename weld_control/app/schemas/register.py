from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class CoilReadResponse(BaseModel):
    address: int
    count: int
    values: List[bool]


class CoilWriteRequest(BaseModel):
    address: int = Field(..., ge=0, le=65535)
    value: bool


class RegisterReadResponse(BaseModel):
    address: int
    count: int
    values: List[int]


class RegisterWriteRequest(BaseModel):
    address: int = Field(..., ge=0, le=65535)
    values: List[int] = Field(..., min_length=1, max_length=123)


class FloatReadResponse(BaseModel):
    address: int
    value: float


class FloatWriteRequest(BaseModel):
    address: int = Field(..., ge=0, le=65535)
    value: float
    verify: bool = Field(False, description="Read back and compare after writing (float32 only)")


class WriteResponse(BaseModel):
    success: bool
    address: int
    value: Optional[float] = None


class MeasurePositionModel(BaseModel):
    id: str
    name: str
    value: float


class MeasurePositionsRequest(BaseModel):
    measure_positions: Dict[str, float] = Field(..., min_length=1)


class ComputationRecordModel(BaseModel):
    id: int
    model: float
    cage_nodes: float
    cage_number: float
    angle: float
    theoretical_length: float
    actual_length: Optional[float] = None
    difference: Optional[float] = None
    total_nodes: float
    created_at: str
    updated_at: str


class RecordsResponse(BaseModel):
    data: List[ComputationRecordModel]
    total: int
    page: int
    limit: int
