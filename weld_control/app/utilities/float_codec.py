"""
Float encodings used by the welding machine PLC.

The two widths deliberately use opposite conventions, matching what the
controller puts on the wire:

* float32: low word first, each 16-bit word and the IEEE-754 value little-endian
* float64: word 0 first, big-endian IEEE-754 across all four words
"""

import struct
from typing import List, Sequence

from weld_control.app.core.engine_exceptions import EncodingError

FLOAT32_REGISTERS = 2
FLOAT64_REGISTERS = 4


def _check_registers(registers: Sequence[int], expected: int) -> None:
    if len(registers) != expected:
        raise EncodingError(f"Expected {expected} registers, got {len(registers)}")
    for value in registers:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
            raise EncodingError(f"Register value out of 16-bit range: {value!r}")


def _check_value(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EncodingError(f"Cannot encode non-numeric value: {value!r}")
    return float(value)


def decode_float32(registers: Sequence[int]) -> float:
    """Decode two registers (low word first) into a float32"""
    _check_registers(registers, FLOAT32_REGISTERS)
    return struct.unpack("<f", struct.pack("<HH", registers[0], registers[1]))[0]


def encode_float32(value: float) -> List[int]:
    """Encode a float32 into [low word, high word]"""
    value = _check_value(value)
    try:
        packed = struct.pack("<f", value)
    except OverflowError as e:
        raise EncodingError(f"Value {value} does not fit in float32") from e
    return list(struct.unpack("<HH", packed))


def decode_float64(registers: Sequence[int]) -> float:
    """Decode four registers (most significant word first) into a float64"""
    _check_registers(registers, FLOAT64_REGISTERS)
    return struct.unpack(">d", struct.pack(">HHHH", *registers))[0]


def encode_float64(value: float) -> List[int]:
    """Encode a float64 into four registers, most significant word first"""
    value = _check_value(value)
    return list(struct.unpack(">HHHH", struct.pack(">d", value)))
