"""
Shared fixtures for the weld control test suite.

``FakePLC`` stands in for the welding machine controller: it holds coil and
register memory and hands out fake pymodbus clients that read and write it.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pytest

from weld_control.app.core import write_verify
from weld_control.app.core.audit_log import AuditLog
from weld_control.app.core.record_store import InMemoryRecordStore, StaticPositionStore
from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.models.address_map import AddressMap
from weld_control.app.models.plc_config import ConnectionConfig
from weld_control.app.models.records import MeasurementPosition
from weld_control.app.utilities.float_codec import decode_float32, encode_float32


@dataclass
class FakeResponse:
    registers: List[int] = field(default_factory=list)
    bits: List[bool] = field(default_factory=list)
    error: bool = False

    def isError(self):
        return self.error


class FakePLC:
    """In-memory PLC with hooks for failure injection"""

    def __init__(self):
        self.coils: Dict[int, bool] = {}
        self.registers: Dict[int, int] = {}
        self.reachable = True
        self.failing_operations: Set[str] = set()
        self.readback_offsets: Dict[int, float] = {}
        self.writes: List[tuple] = []
        self.clients: List["FakeModbusClient"] = []

    def client_factory(self, host, port, timeout=None, **kwargs):
        client = FakeModbusClient(self, host, port, timeout)
        self.clients.append(client)
        return client

    def set_float32(self, address: int, value: float):
        low, high = encode_float32(value)
        self.registers[address] = low
        self.registers[address + 1] = high

    def float32(self, address: int) -> float:
        return decode_float32([self.registers.get(address, 0), self.registers.get(address + 1, 0)])

    def coil_writes(self, address: int) -> List[bool]:
        return [value for kind, addr, value in self.writes if kind == "coil" and addr == address]

    def register_writes(self, address: int) -> List[list]:
        return [value for kind, addr, value in self.writes if kind == "registers" and addr == address]

    def drop_link(self):
        for client in self.clients:
            client.connected = False


class FakeModbusClient:
    def __init__(self, plc: FakePLC, host: str, port: int, timeout: Optional[float]):
        self.plc = plc
        self.host = host
        self.port = port
        self.timeout = timeout
        self.connected = False
        self.close_calls = 0

    async def connect(self):
        self.connected = self.plc.reachable
        return self.connected

    def close(self):
        self.close_calls += 1
        self.connected = False

    def _fails(self, operation: str) -> bool:
        return operation in self.plc.failing_operations

    async def read_holding_registers(self, address, count=1, slave=1):
        if self._fails("read_holding"):
            return FakeResponse(error=True)
        registers = [self.plc.registers.get(address + i, 0) for i in range(count)]
        if address in self.plc.readback_offsets and count == 2:
            registers = encode_float32(decode_float32(registers) + self.plc.readback_offsets[address])
        return FakeResponse(registers=registers)

    async def read_input_registers(self, address, count=1, slave=1):
        if self._fails("read_input"):
            return FakeResponse(error=True)
        return FakeResponse(registers=[self.plc.registers.get(address + i, 0) for i in range(count)])

    async def read_coils(self, address, count=1, slave=1):
        if self._fails("read_coil"):
            return FakeResponse(error=True)
        bits = [self.plc.coils.get(address + i, False) for i in range(count)]
        # pymodbus pads bit responses to a whole byte
        return FakeResponse(bits=bits + [False] * (-len(bits) % 8))

    async def read_discrete_inputs(self, address, count=1, slave=1):
        if self._fails("read_discrete"):
            return FakeResponse(error=True)
        return FakeResponse(bits=[False] * 8)

    async def write_coil(self, address, value, slave=1):
        if self._fails("write_coil"):
            return FakeResponse(error=True)
        self.plc.coils[address] = value
        self.plc.writes.append(("coil", address, value))
        return FakeResponse()

    async def write_coils(self, address, values, slave=1):
        for offset, value in enumerate(values):
            await self.write_coil(address + offset, value, slave=slave)
        return FakeResponse()

    async def write_register(self, address, value, slave=1):
        return await self.write_registers(address, [value], slave=slave)

    async def write_registers(self, address, values, slave=1):
        if self._fails("write_registers"):
            return FakeResponse(error=True)
        for offset, value in enumerate(values):
            self.plc.registers[address + offset] = value
        self.plc.writes.append(("registers", address, list(values)))
        return FakeResponse()


@pytest.fixture(autouse=True)
def no_settle_delay(monkeypatch):
    """Skip the write-verify latch delay"""
    monkeypatch.setattr(write_verify, "SETTLE_DELAY_SECONDS", 0)


@pytest.fixture
def plc():
    return FakePLC()


@pytest.fixture
def connection_config():
    return ConnectionConfig(host="10.0.0.5", port=5020, unit_id=1, timeout=1.0, reconnect_interval=0)


@pytest.fixture
def audit_log():
    return AuditLog()


@pytest.fixture
def address_map():
    return AddressMap()


@pytest.fixture
def positions():
    return StaticPositionStore([
        MeasurementPosition(id="position-1", name="Measuring position 1", value=5.0),
        MeasurementPosition(id="position-2", name="Measuring position 2", value=8.0),
        MeasurementPosition(id="position-3", name="Measuring position 3", value=10.0),
    ])


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def engine(plc, connection_config, audit_log, address_map, positions, record_store):
    return RuleEngine(
        config=connection_config,
        record_store=record_store,
        position_store=positions,
        address_map=address_map,
        audit_log=audit_log,
        client_factory=plc.client_factory,
    )


def messages(audit_log: AuditLog, level: Optional[str] = None) -> List[str]:
    return [entry.message for entry in audit_log.entries()
            if level is None or entry.level.value == level]
