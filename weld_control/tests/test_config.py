"""
Tests for settings, YAML-backed configuration, stores and log formatting.
"""

import json
import logging

import pytest

from weld_control.app.config import ConfigManager, Settings
from weld_control.app.core.engine_exceptions import ConfigurationError
from weld_control.app.core.record_store import InMemoryRecordStore, YamlPositionStore
from weld_control.app.models.address_map import AddressMap
from weld_control.app.models.plc_config import ConnectionConfig
from weld_control.app.models.records import RecordKey
from weld_control.app.utilities.logging_config import JsonFormatter, LoggingConfig, LogLevel


class TestSettings:

    def test_defaults(self):
        config = ConfigManager(Settings()).connection_config()
        assert config.host == "192.168.55.199"
        assert config.port == 502
        assert config.timeout == 15.0
        assert config.reconnect_interval == 8.0
        assert config.max_reconnect_attempts == 1

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("WELD_PLC_HOST", "10.1.2.3")
        monkeypatch.setenv("WELD_PLC_PORT", "1502")
        config = ConfigManager(Settings()).connection_config()
        assert (config.host, config.port) == ("10.1.2.3", 1502)

    def test_updated_keeps_retry_budget(self):
        config = ConnectionConfig().updated(host="10.0.0.9", max_reconnect_attempts=5)
        assert config.host == "10.0.0.9"
        assert config.max_reconnect_attempts == 1


class TestAddressMap:

    def manager(self, path):
        return ConfigManager(Settings(address_map_file=str(path)))

    def test_missing_file_uses_factory_layout(self, tmp_path):
        assert self.manager(tmp_path / "missing.yaml").load_address_map() == AddressMap()

    def test_partial_override(self, tmp_path):
        path = tmp_path / "address_map.yaml"
        path.write_text("address_map:\n  coil_heartbeat: 4100\n  reg_result: 2104\n")
        address_map = self.manager(path).load_address_map()
        assert address_map.coil_heartbeat == 4100
        assert address_map.reg_result == 2104
        assert address_map.coil_position_trigger == 4000

    @pytest.mark.parametrize("content", [
        "address_map:\n  coil_nowhere: 1\n",
        "address_map:\n  coil_heartbeat: -1\n",
        "address_map:\n  coil_heartbeat: M4005\n",
        "address_map: [1, 2]\n",
        "- just\n- a list\n",
        "address_map: {coil_heartbeat: [\n",
    ])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "address_map.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            self.manager(path).load_address_map()

    def test_round_trip_dict(self):
        assert AddressMap.from_dict(AddressMap().to_dict()) == AddressMap()


class TestPositionStore:

    def test_missing_file(self, tmp_path):
        assert YamlPositionStore(tmp_path / "positions.yaml").list_positions() == []

    def test_save_renumbers_positions(self, tmp_path):
        store = YamlPositionStore(tmp_path / "config" / "positions.yaml")
        store.save_positions({"a": 120, "b": 80.5})
        positions = store.list_positions()
        assert [p.id for p in positions] == ["position-1", "position-2"]
        assert positions[1].name == "Measuring position 2"
        assert positions[1].value == 80.5

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "positions.yaml"
        path.write_text("positions:\n  - {id: p1, value: wide}\n")
        with pytest.raises(ConfigurationError):
            YamlPositionStore(path).list_positions()


class TestRecordStore:

    def key(self, cage_nodes=1, angle=0.0):
        return RecordKey(model=3, cage_nodes=cage_nodes, cage_number=7, angle=angle)

    def test_create_then_update(self):
        store = InMemoryRecordStore()
        created = store.upsert(self.key(), {"theoretical_length": 500.0, "total_nodes": 5,
                                            "actual_length": 499.0, "difference": 1.0})
        updated = store.upsert(self.key(), {"actual_length": 498.0, "difference": 2.0})
        assert created.created and not updated.created
        assert updated.record.id == created.record.id
        assert store.find_by_key(self.key()).difference == 2.0
        assert store.find_by_key(self.key()).theoretical_length == 500.0

    def test_new_record_requires_theoretical_length(self):
        with pytest.raises(ValueError):
            InMemoryRecordStore().upsert(self.key(), {"actual_length": 1.0})

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            InMemoryRecordStore().upsert(self.key(), {"theoretical_length": 1.0, "total_nodes": 1, "colour": 2})

    def test_query_filters_and_pages(self):
        store = InMemoryRecordStore()
        for nodes in range(1, 4):
            for angle in (0.0, 90.0):
                store.upsert(self.key(nodes, angle), {"theoretical_length": 500.0, "total_nodes": 3})

        records, total = store.query(angle=90.0, page=1, limit=2)
        assert total == 3
        assert [r.key.cage_nodes for r in records] == [3, 2]

        records, total = store.query(angle=90.0, page=2, limit=2)
        assert [r.key.cage_nodes for r in records] == [1]

    def test_query_rejects_bad_paging(self):
        with pytest.raises(ValueError):
            InMemoryRecordStore().query(page=0)


class TestLogging:

    def test_level_names(self):
        assert LogLevel.parse("warning") == LogLevel.WARNING
        assert LogLevel.parse(logging.DEBUG) == LogLevel.DEBUG
        with pytest.raises(ValueError):
            LogLevel.parse("loud")

    def test_config_accepts_strings(self):
        config = LoggingConfig(level="DEBUG", format_type="standard", component_filters={"heartbeat": "ERROR"})
        assert config.level == LogLevel.DEBUG
        assert config.component_filters["heartbeat"] == LogLevel.ERROR

    def test_json_formatter_carries_extras(self):
        record = logging.LogRecord("weld_control", logging.INFO, __file__, 10, "Heartbeat started", (), None)
        record.component = "heartbeat"
        record.coil = "M4005"
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "Heartbeat started"
        assert payload["level"] == "INFO"
        assert payload["extra"] == {"component": "heartbeat", "coil": "M4005"}
        assert payload["timestamp"].endswith("Z")
