from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class MeasurementPosition:
    """Configured measuring position used by the position-selection rule"""
    id: str
    name: str
    value: float


@dataclass(frozen=True)
class RecordKey:
    """Identity of a computation record: one cage node at one spindle angle"""
    model: float
    cage_nodes: float
    cage_number: float
    angle: float


@dataclass
class ComputationRecord:
    id: int
    key: RecordKey
    theoretical_length: float
    total_nodes: float
    actual_length: Optional[float] = None
    difference: Optional[float] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "model": self.key.model,
            "cage_nodes": self.key.cage_nodes,
            "cage_number": self.key.cage_number,
            "angle": self.key.angle,
            "theoretical_length": self.theoretical_length,
            "actual_length": self.actual_length,
            "difference": self.difference,
            "total_nodes": self.total_nodes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class UpsertResult:
    record: ComputationRecord
    created: bool
