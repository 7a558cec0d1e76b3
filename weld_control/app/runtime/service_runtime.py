from typing import Callable, Optional

from pymodbus.client import AsyncModbusTcpClient

from weld_control.app.config import ConfigManager, Settings
from weld_control.app.core.engine_exceptions import ConnectionError
from weld_control.app.core.record_store import InMemoryRecordStore, YamlPositionStore
from weld_control.app.core.rule_engine import RuleEngine
from weld_control.app.utilities.telemetry import initialize_logging, logger


class ServiceRuntime:
    """Wires settings, stores and the rule engine together for one process"""

    def __init__(self, settings: Settings, client_factory: Callable = AsyncModbusTcpClient,
                 configure_logging: bool = True):
        self.settings = settings
        self.config_manager = ConfigManager(settings)
        self.client_factory = client_factory
        self.configure_logging = configure_logging
        self.engine: Optional[RuleEngine] = None

    async def start(self) -> RuleEngine:
        if self.configure_logging:
            initialize_logging(settings=self.settings)

        logger.info("Initializing rule engine", extra={
            "component": "service_runtime",
            "plc_host": self.settings.plc_host,
            "plc_port": self.settings.plc_port
        })

        self.engine = RuleEngine(
            config=self.config_manager.connection_config(),
            record_store=InMemoryRecordStore(),
            position_store=YamlPositionStore(self.settings.positions_file),
            address_map=self.config_manager.load_address_map(),
            client_factory=self.client_factory,
        )
        self.engine.silent = self.settings.silent

        if self.settings.auto_connect:
            try:
                await self.engine.connect()
            except ConnectionError as e:
                # The operator can connect later through the API
                logger.warning("Automatic PLC connection failed", extra={
                    "component": "service_runtime",
                    "error": str(e)
                })

        logger.info("All services initialized successfully", extra={"component": "service_runtime"})
        return self.engine

    async def stop(self):
        logger.info("Shutting down services...", extra={"component": "service_runtime"})
        if self.engine is not None:
            await self.engine.shutdown()
