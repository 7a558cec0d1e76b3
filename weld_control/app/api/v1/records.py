from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.dependencies import get_engine
from weld_control.app.schemas.register import (
    ComputationRecordModel,
    MeasurePositionModel,
    MeasurePositionsRequest,
    RecordsResponse,
)

router = APIRouter(tags=["records"])


@router.get("/measure-positions", response_model=List[MeasurePositionModel])
async def list_measure_positions(engine: RuleEngine = Depends(get_engine)) -> List[MeasurePositionModel]:
    return [MeasurePositionModel(id=p.id, name=p.name, value=p.value)
            for p in engine.position_store.list_positions()]


@router.post("/measure-positions", response_model=List[MeasurePositionModel])
async def save_measure_positions(request: MeasurePositionsRequest,
                                 engine: RuleEngine = Depends(get_engine)) -> List[MeasurePositionModel]:
    """Replace the configured positions, numbered in request order"""
    store = engine.position_store
    if not hasattr(store, "save_positions"):
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Measurement positions are read-only in this deployment"
        )
    positions = store.save_positions(request.measure_positions)
    return [MeasurePositionModel(id=p.id, name=p.name, value=p.value) for p in positions]


@router.get("/records", response_model=RecordsResponse)
async def query_records(model: Optional[float] = None, cage_nodes: Optional[float] = None,
                        angle: Optional[float] = None, cage_number: Optional[float] = None,
                        page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=1000),
                        engine: RuleEngine = Depends(get_engine)) -> RecordsResponse:
    store = engine.record_store
    if not hasattr(store, "query"):
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="The configured record store does not support queries"
        )
    records, total = store.query(model=model, cage_nodes=cage_nodes, angle=angle, cage_number=cage_number,
                                 page=page, limit=limit)
    return RecordsResponse(
        data=[ComputationRecordModel(**record.to_dict()) for record in records],
        total=total,
        page=page,
        limit=limit,
    )
