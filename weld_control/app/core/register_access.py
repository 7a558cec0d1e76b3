from typing import List, Sequence

from weld_control.app.core.engine_exceptions import EncodingError
from weld_control.app.core.plc_connection import PLCConnection
from weld_control.app.models.connection import ModbusOperation
from weld_control.app.utilities import float_codec

MAX_COIL_COUNT = 2000
MAX_REGISTER_COUNT = 125


def coil_label(address: int) -> str:
    return f"M{address}"


def register_label(address: int) -> str:
    return f"D{address}"


class RegisterAccess:
    """
    Typed reads and writes over the PLC connection.

    Every call is a single round-trip through ``PLCConnection.execute_operation``
    and suspends the caller until the PLC answers or the request times out.
    """

    def __init__(self, connection: PLCConnection):
        self.connection = connection

    async def read_coils(self, address: int, count: int = 1) -> List[bool]:
        _check_range(address, count, MAX_COIL_COUNT)
        return await self.connection.execute_operation(
            ModbusOperation("read_coil", address, count=count, label=coil_label(address))
        )

    async def read_coil(self, address: int) -> bool:
        bits = await self.read_coils(address, 1)
        return bool(bits[0])

    async def write_coil(self, address: int, value: bool) -> None:
        _check_range(address, 1, MAX_COIL_COUNT)
        await self.connection.execute_operation(
            ModbusOperation("write_coil", address, values=bool(value), label=coil_label(address))
        )

    async def read_holding_registers(self, address: int, count: int = 1) -> List[int]:
        _check_range(address, count, MAX_REGISTER_COUNT)
        return await self.connection.execute_operation(
            ModbusOperation("read_holding", address, count=count, label=register_label(address))
        )

    async def write_holding_registers(self, address: int, values: Sequence[int]) -> None:
        values = list(values)
        _check_range(address, len(values), MAX_REGISTER_COUNT)
        for value in values:
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
                raise EncodingError(f"Register value out of 16-bit range: {value!r}", address=address)
        await self.connection.execute_operation(
            ModbusOperation("write_registers", address, values=values, count=len(values),
                            label=register_label(address))
        )

    async def read_float32(self, address: int) -> float:
        registers = await self.read_holding_registers(address, float_codec.FLOAT32_REGISTERS)
        return float_codec.decode_float32(registers)

    async def write_float32(self, address: int, value: float) -> None:
        await self.write_holding_registers(address, float_codec.encode_float32(value))

    async def read_float64(self, address: int) -> float:
        registers = await self.read_holding_registers(address, float_codec.FLOAT64_REGISTERS)
        return float_codec.decode_float64(registers)

    async def write_float64(self, address: int, value: float) -> None:
        await self.write_holding_registers(address, float_codec.encode_float64(value))


def _check_range(address: int, count: int, max_count: int) -> None:
    if isinstance(address, bool) or not isinstance(address, int) or not 0 <= address <= 0xFFFF:
        raise ValueError(f"Address out of range: {address!r}")
    if not 1 <= count <= max_count:
        raise ValueError(f"Count must be between 1 and {max_count}, got {count}")
