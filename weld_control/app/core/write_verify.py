import asyncio
from typing import Union

from weld_control.app.core.audit_log import AuditLog
from weld_control.app.core.engine_exceptions import VerificationError
from weld_control.app.core.register_access import RegisterAccess, register_label

# Time the PLC needs to latch a written value before it reads back
SETTLE_DELAY_SECONDS = 0.5
FLOAT_TOLERANCE = 1e-4

AUDIT_SOURCE = "write_verify"


class WriteVerifier:
    """Write, wait for the PLC to latch, read back and compare"""

    def __init__(self, registers: RegisterAccess, audit_log: AuditLog):
        self.registers = registers
        self.audit_log = audit_log

    async def write_and_verify(self, address: int, value: Union[int, float], is_float: bool = False,
                               description: str = "") -> Union[int, float]:
        """
        Returns the value read back. Raises VerificationError when it differs
        from ``value`` (exactly for integers, beyond FLOAT_TOLERANCE for floats).
        """
        label = register_label(address)
        if is_float:
            await self.registers.write_float32(address, value)
        else:
            await self.registers.write_holding_registers(address, [value])

        await asyncio.sleep(SETTLE_DELAY_SECONDS)

        if is_float:
            actual = await self.registers.read_float32(address)
            matches = abs(actual - value) < FLOAT_TOLERANCE
        else:
            actual = (await self.registers.read_holding_registers(address, 1))[0]
            matches = actual == value

        details = {"address": label, "expected": value, "actual": actual}
        if description:
            details["description"] = description

        if not matches:
            message = f"Write verification failed for {label}: expected {value}, got {actual}"
            self.audit_log.error(message, AUDIT_SOURCE, details)
            raise VerificationError(message, address=address, expected=value, actual=actual,
                                    source=AUDIT_SOURCE)

        self.audit_log.info(f"Verified write to {label}: {actual}", AUDIT_SOURCE, details)
        return actual
