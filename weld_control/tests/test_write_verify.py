"""
Tests for the write-then-verify primitive.
"""

import asyncio

import pytest

from conftest import messages
from weld_control.app.core.engine_exceptions import VerificationError
from weld_control.app.core.write_verify import FLOAT_TOLERANCE, WriteVerifier


class StubRegisters:
    """Register access double that reads back whatever it is told to"""

    def __init__(self, readback_offset=0, integer_readback=None):
        self.readback_offset = readback_offset
        self.integer_readback = integer_readback
        self.calls = []
        self.memory = {}

    async def write_float32(self, address, value):
        self.calls.append(("write_float32", address))
        self.memory[address] = value

    async def read_float32(self, address):
        self.calls.append(("read_float32", address))
        return self.memory[address] + self.readback_offset

    async def write_holding_registers(self, address, values):
        self.calls.append(("write_holding_registers", address))
        self.memory[address] = values[0]

    async def read_holding_registers(self, address, count):
        self.calls.append(("read_holding_registers", address))
        if self.integer_readback is not None:
            return [self.integer_readback]
        return [self.memory[address]]


class TestWriteVerify:

    def test_tolerance_constant(self):
        assert FLOAT_TOLERANCE == 1e-4

    def test_integer_exact_match(self, audit_log):
        registers = StubRegisters()
        verifier = WriteVerifier(registers, audit_log)
        assert asyncio.run(verifier.write_and_verify(2004, 42)) == 42
        assert registers.calls == [("write_holding_registers", 2004), ("read_holding_registers", 2004)]
        assert any("Verified write to D2004" in m for m in messages(audit_log, "INFO"))

    def test_integer_mismatch(self, audit_log):
        verifier = WriteVerifier(StubRegisters(integer_readback=43), audit_log)
        with pytest.raises(VerificationError) as excinfo:
            asyncio.run(verifier.write_and_verify(2004, 42))
        assert excinfo.value.expected == 42
        assert excinfo.value.actual == 43
        assert excinfo.value.address == 2004
        error = audit_log.entries()[0]
        assert error.level.value == "ERROR"
        assert error.details["expected"] == 42 and error.details["actual"] == 43

    def test_float_within_tolerance(self, audit_log):
        registers = StubRegisters(readback_offset=5e-5)
        verifier = WriteVerifier(registers, audit_log)
        assert asyncio.run(verifier.write_and_verify(2000, 8.0, is_float=True)) == pytest.approx(8.0, abs=1e-4)
        assert registers.calls == [("write_float32", 2000), ("read_float32", 2000)]

    def test_float_outside_tolerance(self, audit_log):
        verifier = WriteVerifier(StubRegisters(readback_offset=1e-3), audit_log)
        with pytest.raises(VerificationError):
            asyncio.run(verifier.write_and_verify(2000, 8.0, is_float=True))

    def test_description_in_details(self, audit_log):
        verifier = WriteVerifier(StubRegisters(), audit_log)
        asyncio.run(verifier.write_and_verify(2000, 1.5, is_float=True, description="measuring position"))
        assert audit_log.entries()[0].details["description"] == "measuring position"
