import itertools
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import yaml

from weld_control.app.core.engine_exceptions import ConfigurationError
from weld_control.app.models.records import ComputationRecord, MeasurementPosition, RecordKey, UpsertResult
from weld_control.app.utilities.telemetry import logger

UPSERT_FIELDS = ("actual_length", "theoretical_length", "difference", "total_nodes")


class RecordStore(Protocol):
    """Persistence for computation records, keyed by RecordKey"""

    def find_by_key(self, key: RecordKey) -> Optional[ComputationRecord]:
        ...

    def upsert(self, key: RecordKey, fields: Mapping[str, Optional[float]]) -> UpsertResult:
        ...


class PositionStore(Protocol):
    """Read-only source of configured measurement positions"""

    def list_positions(self) -> List[MeasurementPosition]:
        ...


class InMemoryRecordStore:
    """Record store kept in process memory"""

    def __init__(self):
        self._records: Dict[RecordKey, ComputationRecord] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    def find_by_key(self, key: RecordKey) -> Optional[ComputationRecord]:
        return self._records.get(key)

    def upsert(self, key: RecordKey, fields: Mapping[str, Optional[float]]) -> UpsertResult:
        unknown = set(fields) - set(UPSERT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown record fields: {', '.join(sorted(unknown))}")

        existing = self._records.get(key)
        if existing is not None:
            for name, value in fields.items():
                setattr(existing, name, value)
            existing.updated_at = datetime.now()
            return UpsertResult(record=existing, created=False)

        if fields.get("theoretical_length") is None or fields.get("total_nodes") is None:
            raise ValueError("theoretical_length and total_nodes are required for a new record")

        record = ComputationRecord(id=next(self._ids), key=key, **fields)
        self._records[key] = record
        return UpsertResult(record=record, created=True)

    def query(self, model: Optional[float] = None, cage_nodes: Optional[float] = None,
              angle: Optional[float] = None, cage_number: Optional[float] = None,
              page: int = 1, limit: int = 50) -> Tuple[List[ComputationRecord], int]:
        """Exact-match filtering with paging; newest records first. Returns (page, total)"""
        if page < 1 or not 1 <= limit <= 1000:
            raise ValueError("page must be >= 1 and limit between 1 and 1000")

        filters = {"model": model, "cage_nodes": cage_nodes, "angle": angle, "cage_number": cage_number}
        matches = [
            record for record in self._records.values()
            if all(value is None or getattr(record.key, name) == value for name, value in filters.items())
        ]
        matches.sort(key=lambda record: record.id, reverse=True)
        start = (page - 1) * limit
        return matches[start:start + limit], len(matches)


class StaticPositionStore:
    """Fixed list of positions, mostly for tests and tooling"""

    def __init__(self, positions: Iterable[MeasurementPosition] = ()):
        self._positions = list(positions)

    def list_positions(self) -> List[MeasurementPosition]:
        return list(self._positions)


class YamlPositionStore:
    """
    Measurement positions persisted in a YAML file.

    File layout::

        positions:
          - {id: position-1, name: Measuring position 1, value: 100.5}

    A missing file means no positions are configured.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def list_positions(self) -> List[MeasurementPosition]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid measurement position file {self.path}: {e}") from e

        entries = data.get("positions", []) if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ConfigurationError(f"'positions' in {self.path} must be a list")

        positions = []
        for index, entry in enumerate(entries, start=1):
            try:
                positions.append(MeasurementPosition(
                    id=str(entry.get("id", f"position-{index}")),
                    name=str(entry.get("name", f"Measuring position {index}")),
                    value=float(entry["value"]),
                ))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid measurement position #{index} in {self.path}: {e}") from e
        return positions

    def save_positions(self, values: Mapping[str, Union[int, float]]) -> List[MeasurementPosition]:
        """Replace all positions with ``values`` in the given order"""
        positions = [
            MeasurementPosition(id=f"position-{index}", name=f"Measuring position {index}", value=float(value))
            for index, value in enumerate(values.values(), start=1)
        ]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            yaml.safe_dump(
                {"positions": [{"id": p.id, "name": p.name, "value": p.value} for p in positions]},
                f, sort_keys=False
            )

        logger.info("Measurement positions saved", extra={
            "component": "record_store",
            "path": str(self.path),
            "count": len(positions)
        })
        return positions
