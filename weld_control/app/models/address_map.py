from dataclasses import dataclass, fields
from typing import Any, Dict


@dataclass(frozen=True)
class AddressMap:
    """
    Coil and register layout of the welding machine PLC.

    Coils are addressed in the PLC "M" area and registers in the "D" area;
    both map one-to-one onto Modbus protocol addresses. Every register entry
    below holds a float32 spanning two consecutive registers.
    """
    # Coils
    coil_position_trigger: int = 4000      # A: measurement-position selection
    coil_correction_trigger: int = 4001    # B: length correction
    coil_capture_trigger: int = 4002       # E: measurement capture
    coil_branch_c: int = 4003              # C: branch selector, wins over D
    coil_branch_d: int = 4004              # D: branch selector
    coil_heartbeat: int = 4005             # H

    # Registers
    reg_position_out: int = 2000
    reg_result: int = 2004
    reg_ring_radius: int = 2012
    reg_wire_diameter: int = 2016
    reg_source_c: int = 2020
    reg_source_d: int = 2024
    reg_theoretical_c: int = 2028
    reg_theoretical_d: int = 2032
    reg_model: int = 2040
    reg_cage_nodes: int = 2044
    reg_cage_number: int = 2048
    reg_total_nodes: int = 2052
    reg_angle: int = 4012
    reg_servo_north: int = 4028
    reg_servo_south: int = 4044

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AddressMap":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown address map entries: {', '.join(sorted(unknown))}")
        values = {}
        for key, value in data.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"Address for '{key}' must be a non-negative integer, got {value!r}")
            values[key] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
