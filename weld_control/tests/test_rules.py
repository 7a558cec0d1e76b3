"""
Tests for the three production rules, driven one poll cycle at a time.
"""

import asyncio

import pytest

from conftest import messages
from weld_control.app.core.engine_exceptions import RecordNotFoundError
from weld_control.app.core.record_store import StaticPositionStore
from weld_control.app.core.rules import Branch, select_branch, select_measurement_position
from weld_control.app.models.records import MeasurementPosition, RecordKey

COIL_A, COIL_B, COIL_E, COIL_C, COIL_D = 4000, 4001, 4002, 4003, 4004


def make_positions(*values):
    return [MeasurementPosition(id=f"position-{i}", name=f"P{i}", value=v) for i, v in enumerate(values, 1)]


def cycles(engine, count=1, before_each=None):
    async def scenario():
        await engine.connection.connect()
        for _ in range(count):
            if before_each:
                before_each()
            await engine.run_cycle()

    asyncio.run(scenario())


class TestPositionSelection:

    def test_smallest_excess(self):
        position, fallback = select_measurement_position(make_positions(5, 8, 10), 7)
        assert position.value == 8
        assert fallback is False

    def test_fallback_to_largest(self):
        position, fallback = select_measurement_position(make_positions(1, 2, 3), 10)
        assert position.value == 3
        assert fallback is True

    def test_equal_value_is_not_above_target(self):
        position, fallback = select_measurement_position(make_positions(7, 9), 7)
        assert position.value == 9

    def test_empty_positions(self):
        with pytest.raises(RecordNotFoundError):
            select_measurement_position([], 1.0)
        with pytest.raises(LookupError):
            select_measurement_position([], 1.0)

    def test_branch_priority(self):
        assert select_branch(True, True) == Branch.C
        assert select_branch(False, True) == Branch.D
        assert select_branch(False, False) is None


class TestMeasurementPositionRule:

    @pytest.fixture(autouse=True)
    def ring(self, plc):
        plc.set_float32(2012, 4.0)
        plc.set_float32(2016, 3.0)

    def test_writes_selected_position_and_resets(self, plc, engine):
        plc.coils[COIL_A] = True
        cycles(engine)
        assert plc.float32(2000) == 8.0
        assert plc.coils[COIL_A] is False

    def test_fires_once_per_rising_edge(self, plc, engine):
        hold_on = lambda: plc.coils.__setitem__(COIL_A, True)
        cycles(engine, 5, before_each=hold_on)
        assert len(plc.register_writes(2000)) == 1

    def test_fires_again_after_release(self, plc, engine):
        levels = iter([True, True, False, True])
        cycles(engine, 4, before_each=lambda: plc.coils.__setitem__(COIL_A, next(levels)))
        assert len(plc.register_writes(2000)) == 2

    def test_fallback_logs_warning(self, plc, engine, audit_log):
        engine.rules[0].context.position_store = StaticPositionStore(make_positions(1, 2, 3))
        plc.coils[COIL_A] = True
        cycles(engine)
        assert plc.float32(2000) == 3.0
        assert any("No measuring position above target" in m for m in messages(audit_log, "WARNING"))

    def test_no_positions(self, plc, engine, audit_log):
        engine.rules[0].context.position_store = StaticPositionStore([])
        plc.coils[COIL_A] = True
        cycles(engine)
        assert plc.register_writes(2000) == []
        assert plc.coils[COIL_A] is True
        assert "Rule 1 aborted: no measurement positions configured" in messages(audit_log, "WARNING")

    def test_verification_failure_keeps_coil(self, plc, engine, audit_log):
        plc.readback_offsets[2000] = 0.5
        plc.coils[COIL_A] = True
        cycles(engine, 2)
        assert plc.coils[COIL_A] is True
        assert len(plc.register_writes(2000)) == 1
        assert any(m.startswith("Rule 1 failed") for m in messages(audit_log, "ERROR"))


class TestLengthCorrectionRule:

    def test_first_node_writes_source(self, plc, engine):
        plc.coils.update({COIL_B: True, COIL_C: True})
        plc.set_float32(2020, 12.5)
        plc.set_float32(2044, 1)
        cycles(engine)
        assert plc.float32(2004) == 12.5
        assert plc.coils[COIL_B] is False
        assert engine.rule_state.last_branch == Branch.C

    def test_branch_suppressed_while_held(self, plc, engine):
        plc.coils[COIL_C] = True
        plc.set_float32(2020, 10.0)
        plc.set_float32(2024, 20.0)
        plc.set_float32(2044, 1)
        cycles(engine, 4, before_each=lambda: plc.coils.__setitem__(COIL_B, True))
        assert len(plc.register_writes(2004)) == 1

        def switch_to_d():
            plc.coils.update({COIL_B: True, COIL_C: False, COIL_D: True})

        cycles(engine, 3, before_each=switch_to_d)
        assert len(plc.register_writes(2004)) == 2
        assert plc.float32(2004) == 20.0

    def test_c_wins_over_d(self, plc, engine):
        plc.coils.update({COIL_B: True, COIL_C: True, COIL_D: True})
        plc.set_float32(2020, 10.0)
        plc.set_float32(2024, 20.0)
        plc.set_float32(2044, 1)
        cycles(engine)
        assert plc.float32(2004) == 10.0

    @pytest.fixture
    def second_node(self, plc):
        plc.coils.update({COIL_B: True, COIL_D: True})
        plc.set_float32(2024, 100.0)
        plc.set_float32(2044, 2)
        plc.set_float32(4012, 90.0)
        plc.set_float32(2040, 3)
        plc.set_float32(2048, 7)

    def test_subtracts_previous_node_difference(self, plc, engine, record_store, second_node):
        record_store.upsert(RecordKey(model=3, cage_nodes=1, cage_number=7, angle=90.0), {
            "actual_length": 497.5, "theoretical_length": 500.0, "difference": 2.5, "total_nodes": 5,
        })
        cycles(engine)
        assert plc.float32(2004) == 97.5

    def test_missing_record_writes_source(self, plc, engine, audit_log, second_node):
        cycles(engine)
        assert plc.float32(2004) == 100.0
        assert any("no record for the previous cage node" in m for m in messages(audit_log, "WARNING"))

    def test_null_difference_writes_source(self, plc, engine, audit_log, record_store, second_node):
        record_store.upsert(RecordKey(model=3, cage_nodes=1, cage_number=7, angle=90.0), {
            "actual_length": None, "theoretical_length": 500.0, "difference": None, "total_nodes": 1,
        })
        cycles(engine)
        assert plc.float32(2004) == 100.0
        assert any("has no difference" in m for m in messages(audit_log, "WARNING"))

    def test_node_count_below_one(self, plc, engine, audit_log):
        plc.coils.update({COIL_B: True, COIL_C: True})
        plc.set_float32(2044, 0)
        cycles(engine)
        assert plc.register_writes(2004) == []
        assert any("below 1" in m for m in messages(audit_log, "WARNING"))

    def test_verification_failure_retries_next_cycle(self, plc, engine, audit_log):
        plc.coils.update({COIL_B: True, COIL_C: True})
        plc.set_float32(2020, 12.5)
        plc.set_float32(2044, 1)
        plc.readback_offsets[2004] = 1.0
        cycles(engine, 2)
        assert plc.coils[COIL_B] is True
        assert engine.rule_state.last_branch is None
        assert len(plc.register_writes(2004)) == 2
        assert any(m.startswith("Rule 2 failed") for m in messages(audit_log, "ERROR"))

    def test_release_clears_branch_memory(self, plc, engine):
        plc.coils.update({COIL_B: True, COIL_C: True})
        plc.set_float32(2044, 1)
        cycles(engine)
        assert engine.rule_state.last_branch == Branch.C
        # Coil B was reset by the rule
        cycles(engine)
        assert engine.rule_state.last_branch is None


class TestMeasurementCaptureRule:

    @pytest.fixture
    def measurement(self, plc):
        plc.set_float32(2028, 500.0)
        plc.set_float32(2032, 600.0)
        plc.set_float32(2040, 3)
        plc.set_float32(2044, 2)
        plc.set_float32(2048, 7)
        plc.set_float32(4012, 90.0)
        plc.set_float32(4028, 100.0)
        plc.set_float32(4044, 598.0)
        plc.set_float32(2052, 5)

    def test_captures_record(self, plc, engine, record_store, audit_log, measurement):
        plc.coils.update({COIL_E: True, COIL_C: True})
        cycles(engine)
        record = record_store.find_by_key(RecordKey(model=3, cage_nodes=2, cage_number=7, angle=90.0))
        assert record.actual_length == 498.0
        assert record.difference == 2.0
        assert record.theoretical_length == 500.0
        assert record.total_nodes == 5
        assert plc.coils[COIL_E] is False
        assert any("stored new record" in m for m in messages(audit_log, "INFO"))

    def test_branch_d_theoretical_length(self, plc, engine, record_store, measurement):
        plc.coils.update({COIL_E: True, COIL_D: True})
        cycles(engine)
        record = record_store.find_by_key(RecordKey(model=3, cage_nodes=2, cage_number=7, angle=90.0))
        assert record.difference == 102.0

    def test_second_capture_updates(self, plc, engine, record_store, audit_log, measurement):
        levels = iter([True, False, True])
        plc.coils[COIL_C] = True
        cycles(engine, 3, before_each=lambda: plc.coils.__setitem__(COIL_E, next(levels)))
        assert len(record_store) == 1
        assert any("updated record" in m for m in messages(audit_log, "INFO"))

    def test_last_node_nulls_measurements(self, plc, engine, record_store, measurement):
        plc.set_float32(2044, 5)
        plc.coils.update({COIL_E: True, COIL_C: True})
        cycles(engine)
        record = record_store.find_by_key(RecordKey(model=3, cage_nodes=5, cage_number=7, angle=90.0))
        assert record.actual_length is None
        assert record.difference is None

    def test_no_branch_skips_capture(self, plc, engine, record_store, audit_log, measurement):
        plc.coils[COIL_E] = True
        cycles(engine)
        assert len(record_store) == 0
        assert plc.coils[COIL_E] is False
        assert "Rule 3: both branch selectors are OFF, capture skipped" in messages(audit_log, "WARNING")

    def test_failure_still_resets_coil(self, plc, engine, record_store, audit_log, measurement):
        plc.coils.update({COIL_E: True, COIL_C: True})

        async def scenario():
            await engine.connection.connect()
            plc.failing_operations = {"read_holding"}
            await engine.run_cycle()

        asyncio.run(scenario())
        assert len(record_store) == 0
        assert plc.coils[COIL_E] is False
        assert any(m.startswith("Rule 3 capture failed") for m in messages(audit_log, "ERROR"))
