"""
Configuration management for the weld control service
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from weld_control.app.core.engine_exceptions import ConfigurationError
from weld_control.app.models.address_map import AddressMap
from weld_control.app.models.plc_config import ConnectionConfig


class Settings(BaseSettings):
    """Application settings, overridable through WELD_* environment variables"""

    model_config = SettingsConfigDict(env_prefix="WELD_", env_file=".env", extra="ignore")

    # API Settings
    api_title: str = "Weld Control API"
    api_version: str = "1.0.0"
    api_description: str = "Rebar cage welding machine PLC rule engine"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # PLC Configuration
    plc_host: str = "192.168.55.199"
    plc_port: int = 502
    plc_unit_id: int = 1
    plc_timeout: float = 15.0  # seconds
    plc_reconnect_interval: float = 8.0  # seconds

    # Configuration files
    address_map_file: str = "config/address_map.yaml"
    positions_file: str = "config/measure_positions.yaml"

    # Engine
    auto_connect: bool = False
    silent: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json_compact"
    log_console: bool = True
    log_file: Optional[str] = None


class ConfigManager:
    """Builds engine configuration from settings and YAML files"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            host=self.settings.plc_host,
            port=self.settings.plc_port,
            unit_id=self.settings.plc_unit_id,
            timeout=self.settings.plc_timeout,
            reconnect_interval=self.settings.plc_reconnect_interval,
        )

    def load_address_map(self) -> AddressMap:
        """
        Load the coil/register layout; a missing file keeps the factory layout.

        The YAML file may override any subset of entries::

            address_map:
              coil_heartbeat: 4005
              reg_result: 2004
        """
        path = Path(self.settings.address_map_file)
        if not path.exists():
            return AddressMap()

        data = self._load_yaml(path)
        entries = data.get("address_map", {})
        if not isinstance(entries, dict):
            raise ConfigurationError(f"'address_map' in {path} must be a mapping")

        try:
            return AddressMap.from_dict(entries)
        except ValueError as e:
            raise ConfigurationError(f"Invalid address map {path}: {e}") from e

    @staticmethod
    def _load_yaml(path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping")
        return data


settings = Settings()
config_manager = ConfigManager(settings)
