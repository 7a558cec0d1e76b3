"""
Production rules evaluated by the rule engine on every healthy poll cycle.

Rule 1 (coil A, rising edge) picks the measuring position for the current
ring and wire. Rule 2 (coil B, level) writes the corrected rebar length for
the branch selected by coils C/D, once per assertion and branch. Rule 3
(coil E, rising edge) captures the measured length of the current cage node
into the record store.

Rules only report through the audit log and raise on failure; the engine
catches per rule so one failing rule never blocks the others.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from weld_control.app.core.audit_log import AuditLog
from weld_control.app.core.engine_exceptions import RecordNotFoundError
from weld_control.app.core.record_store import PositionStore, RecordStore
from weld_control.app.core.register_access import RegisterAccess, coil_label, register_label
from weld_control.app.core.write_verify import WriteVerifier
from weld_control.app.models.address_map import AddressMap
from weld_control.app.models.records import MeasurementPosition, RecordKey


class Branch(Enum):
    C = "C"
    D = "D"


@dataclass
class RuleState:
    """Per-rule memory kept by the engine between cycles"""
    position_trigger: bool = False       # last level of coil A
    correction_trigger: bool = False     # last level of coil B
    capture_trigger: bool = False        # last level of coil E
    last_branch: Optional[Branch] = None


@dataclass
class RuleContext:
    registers: RegisterAccess
    verifier: WriteVerifier
    audit_log: AuditLog
    address_map: AddressMap
    record_store: RecordStore
    position_store: PositionStore


def select_branch(branch_c: bool, branch_d: bool) -> Optional[Branch]:
    """C wins when both selectors are set"""
    if branch_c:
        return Branch.C
    if branch_d:
        return Branch.D
    return None


def select_measurement_position(positions: Sequence[MeasurementPosition],
                                target: float) -> Tuple[MeasurementPosition, bool]:
    """
    Pick the position with the smallest value strictly above ``target``.

    Falls back to the largest position when none is above; the second item of
    the returned tuple tells whether the fallback was used.
    """
    if not positions:
        raise RecordNotFoundError("No measurement positions configured", source="rule1")

    above = [position for position in positions if position.value - target > 0]
    if above:
        return min(above, key=lambda position: position.value - target), False
    return max(positions, key=lambda position: position.value), True


class Rule:
    name = "rule"
    title = "Rule"

    def __init__(self, context: RuleContext):
        self.context = context

    @property
    def registers(self) -> RegisterAccess:
        return self.context.registers

    @property
    def address_map(self) -> AddressMap:
        return self.context.address_map

    def info(self, message: str, **details):
        self.context.audit_log.info(message, self.name, details or None)

    def warning(self, message: str, **details):
        self.context.audit_log.warning(message, self.name, details or None)

    def error(self, message: str, **details):
        self.context.audit_log.error(message, self.name, details or None)

    async def evaluate(self, state: RuleState) -> bool:
        """Run the rule once; returns True when its action ran to completion"""
        raise NotImplementedError

    async def reset_coil(self, address: int):
        await self.registers.write_coil(address, False)
        self.info(f"Reset coil {coil_label(address)} to OFF")


class MeasurementPositionRule(Rule):
    name = "rule1"
    title = "Rule 1"

    async def evaluate(self, state: RuleState) -> bool:
        trigger = self.address_map.coil_position_trigger
        level = await self.registers.read_coil(trigger)
        rising = level and not state.position_trigger
        state.position_trigger = level
        if not rising:
            return False

        self.info(f"Rule 1 triggered by {coil_label(trigger)}, selecting measuring position")

        radius = await self.registers.read_float32(self.address_map.reg_ring_radius)
        diameter = await self.registers.read_float32(self.address_map.reg_wire_diameter)
        target = radius + diameter
        self.info(f"Ring radius {radius}, wire diameter {diameter}, target {target}",
                  radius=radius, diameter=diameter, target=target)

        try:
            position, is_fallback = select_measurement_position(
                self.context.position_store.list_positions(), target
            )
        except RecordNotFoundError:
            self.warning("Rule 1 aborted: no measurement positions configured")
            return False

        if is_fallback:
            self.warning(f"No measuring position above target {target}, using largest position "
                         f"{position.name} = {position.value}", position_id=position.id, target=target)
        else:
            self.info(f"Selected measuring position {position.name} = {position.value} "
                      f"(excess {position.value - target:.2f})", position_id=position.id, target=target)

        await self.context.verifier.write_and_verify(
            self.address_map.reg_position_out, position.value, is_float=True,
            description=f"measuring position {position.name}"
        )
        await self.reset_coil(trigger)
        return True


class LengthCorrectionRule(Rule):
    name = "rule2"
    title = "Rule 2"

    async def evaluate(self, state: RuleState) -> bool:
        trigger = self.address_map.coil_correction_trigger
        level = await self.registers.read_coil(trigger)
        branch_c = await self.registers.read_coil(self.address_map.coil_branch_c)
        branch_d = await self.registers.read_coil(self.address_map.coil_branch_d)

        changed = level != state.correction_trigger
        state.correction_trigger = level

        if not level:
            if state.last_branch is not None:
                state.last_branch = None
                if changed:
                    self.info(f"Rule 2: {coil_label(trigger)} is OFF, branch memory cleared")
            return False

        if changed:
            self.info(f"Rule 2: {coil_label(trigger)} is ON, checking branch selectors")

        branch = select_branch(branch_c, branch_d)
        if branch is None or branch == state.last_branch:
            return False

        if branch_c and branch_d:
            self.info("Rule 2: both branch selectors are ON, running branch C")
        self.info(f"Rule 2: running branch {branch.value}")

        try:
            await self._run_branch(branch)
        except Exception:
            state.last_branch = None
            raise

        self.info(f"Rule 2: branch {branch.value} completed")
        state.last_branch = branch
        await self.reset_coil(trigger)
        return True

    async def _run_branch(self, branch: Branch):
        amap = self.address_map
        source_address = amap.reg_source_c if branch == Branch.C else amap.reg_source_d
        source = await self.registers.read_float32(source_address)
        cage_nodes = await self.registers.read_float32(amap.reg_cage_nodes)
        self.info(f"Rule 2: source {register_label(source_address)} = {source}, cage nodes {cage_nodes}",
                  branch=branch.value, source=source, cage_nodes=cage_nodes)

        if cage_nodes == 1:
            value = source
            description = f"branch {branch.value}: first cage node, source value"
        elif cage_nodes > 1:
            value = await self._corrected_length(source, cage_nodes)
            description = f"branch {branch.value}: corrected length"
        else:
            self.warning(f"Rule 2: cage node count {cage_nodes} is below 1, nothing written",
                         branch=branch.value, cage_nodes=cage_nodes)
            return

        await self.context.verifier.write_and_verify(amap.reg_result, value, is_float=True,
                                                     description=description)

    async def _corrected_length(self, source: float, cage_nodes: float) -> float:
        amap = self.address_map
        angle = await self.registers.read_float32(amap.reg_angle)
        model = await self.registers.read_float32(amap.reg_model)
        cage_number = await self.registers.read_float32(amap.reg_cage_number)

        key = RecordKey(model=model, cage_nodes=cage_nodes - 1, cage_number=cage_number, angle=angle)
        record = self.context.record_store.find_by_key(key)

        if record is None:
            self.warning("Rule 2: no record for the previous cage node, writing source value unchanged",
                         model=model, cage_nodes=key.cage_nodes, cage_number=cage_number, angle=angle)
            return source
        if record.difference is None:
            self.warning("Rule 2: previous cage node has no difference, writing source value unchanged",
                         record_id=record.id)
            return source

        result = source - record.difference
        self.info(f"Rule 2: corrected length {source} - {record.difference} = {result}",
                  record_id=record.id, result=result)
        return result


class MeasurementCaptureRule(Rule):
    name = "rule3"
    title = "Rule 3"

    async def evaluate(self, state: RuleState) -> bool:
        trigger = self.address_map.coil_capture_trigger
        level = await self.registers.read_coil(trigger)
        rising = level and not state.capture_trigger
        state.capture_trigger = level
        if not rising:
            return False

        self.info(f"Rule 3 triggered by {coil_label(trigger)}, capturing measurement")

        try:
            branch_c = await self.registers.read_coil(self.address_map.coil_branch_c)
            branch_d = await self.registers.read_coil(self.address_map.coil_branch_d)
            branch = select_branch(branch_c, branch_d)
            if branch is None:
                self.warning("Rule 3: both branch selectors are OFF, capture skipped")
            else:
                await self._capture(branch)
        except Exception as e:
            self.error(f"Rule 3 capture failed: {e}", error_type=type(e).__name__)

        await self.reset_coil(trigger)
        return True

    async def _capture(self, branch: Branch):
        amap = self.address_map
        read = self.registers.read_float32
        theoretical_address = amap.reg_theoretical_c if branch == Branch.C else amap.reg_theoretical_d

        theoretical = await read(theoretical_address)
        model = await read(amap.reg_model)
        cage_nodes = await read(amap.reg_cage_nodes)
        cage_number = await read(amap.reg_cage_number)
        angle = await read(amap.reg_angle)
        north = await read(amap.reg_servo_north)
        south = await read(amap.reg_servo_south)
        total_nodes = await read(amap.reg_total_nodes)

        actual_length = south - north
        difference = theoretical - actual_length
        if cage_nodes == total_nodes:
            # Last node of the cage: nothing follows that needs a correction
            actual_length = None
            difference = None

        key = RecordKey(model=model, cage_nodes=cage_nodes, cage_number=cage_number, angle=angle)
        result = self.context.record_store.upsert(key, {
            "actual_length": actual_length,
            "theoretical_length": theoretical,
            "difference": difference,
            "total_nodes": total_nodes,
        })

        action = "stored new" if result.created else "updated"
        self.info(f"Rule 3: {action} record {result.record.id} for branch {branch.value}",
                  record_id=result.record.id, is_update=not result.created,
                  actual_length=actual_length, difference=difference)
