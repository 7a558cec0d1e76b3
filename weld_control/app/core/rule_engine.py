import asyncio
from enum import Enum
from typing import Callable, List, Optional

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ConnectionException

from weld_control.app.core.audit_log import AuditLog
from weld_control.app.core.engine_exceptions import ConnectionError
from weld_control.app.core.heartbeat import HeartbeatPublisher
from weld_control.app.core.plc_connection import PLCConnection
from weld_control.app.core.record_store import PositionStore, RecordStore
from weld_control.app.core.register_access import RegisterAccess
from weld_control.app.core.rules import (
    LengthCorrectionRule, MeasurementCaptureRule, MeasurementPositionRule, Rule, RuleContext, RuleState
)
from weld_control.app.core.write_verify import WriteVerifier
from weld_control.app.models.address_map import AddressMap
from weld_control.app.models.audit import AuditLogEntry
from weld_control.app.models.connection import ConnectionStatus
from weld_control.app.models.plc_config import ConnectionConfig
from weld_control.app.utilities.telemetry import logger

HEALTHY_INTERVAL_SECONDS = 1.0
UNHEALTHY_INTERVAL_SECONDS = 5.0
HEALTH_CHECK_EVERY_CYCLES = 10

AUDIT_SOURCE = "rule_engine"


class EngineState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RuleEngine:
    """
    Polls the PLC and evaluates the production rules.

    The engine owns everything that talks to the PLC: the connection, the
    register access layer, the heartbeat and the audit log. One asyncio task
    runs the poll loop; ``run_cycle`` can also be driven directly.
    """

    def __init__(self, config: ConnectionConfig, record_store: RecordStore, position_store: PositionStore,
                 address_map: Optional[AddressMap] = None, audit_log: Optional[AuditLog] = None,
                 client_factory: Callable = AsyncModbusTcpClient):
        self.address_map = address_map if address_map is not None else AddressMap()
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.record_store = record_store
        self.position_store = position_store

        self.connection = PLCConnection(config, self.audit_log, client_factory=client_factory)
        self.registers = RegisterAccess(self.connection)
        self.verifier = WriteVerifier(self.registers, self.audit_log)
        self.heartbeat = HeartbeatPublisher(self.registers, self.connection, self.address_map.coil_heartbeat)

        context = RuleContext(
            registers=self.registers,
            verifier=self.verifier,
            audit_log=self.audit_log,
            address_map=self.address_map,
            record_store=record_store,
            position_store=position_store,
        )
        self.rules: List[Rule] = [
            MeasurementPositionRule(context),
            LengthCorrectionRule(context),
            MeasurementCaptureRule(context),
        ]

        self.rule_state = RuleState()
        self.state = EngineState.IDLE
        self.silent = True
        self.cycle_count = 0
        self.connection_healthy = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    # Control surface

    def start(self, silent: bool = True) -> bool:
        """
        Start the poll loop from the running event loop.

        ``silent=False`` adds per-cycle diagnostics to the application log;
        the audit log is unaffected. Returns False when already running.
        """
        if self.is_running:
            return False

        # Raises RuntimeError outside a running loop, before any state changes
        loop = asyncio.get_running_loop()

        self.silent = silent
        self.rule_state = RuleState()
        self.cycle_count = 0
        self.connection_healthy = False
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._run())
        self.state = EngineState.RUNNING

        self.audit_log.info("Rule engine started", AUDIT_SOURCE, {"silent": silent})
        return True

    async def stop(self) -> bool:
        """Stop after the current cycle; returns False when not running"""
        if not self.is_running:
            return False

        self.state = EngineState.STOPPED
        self._stop_event.set()
        await self.heartbeat.stop()

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await task

        self.audit_log.info("Rule engine stopped", AUDIT_SOURCE, {"cycles": self.cycle_count})
        return True

    async def connect(self, config: Optional[ConnectionConfig] = None) -> ConnectionStatus:
        """Connect to the PLC and start polling once connected"""
        status = await self.connection.connect(config)
        self.start(silent=self.silent)
        return status

    async def disconnect(self) -> bool:
        """Stop polling and the heartbeat, then close the PLC session"""
        await self.stop()
        await self.heartbeat.stop()
        self.connection_healthy = False
        return await self.connection.disconnect()

    async def shutdown(self):
        await self.disconnect()

    # Read surface

    def status(self) -> ConnectionStatus:
        return self.connection.status

    async def refresh_status(self) -> ConnectionStatus:
        """Reconcile the connection status with the session before reporting it"""
        await self.connection.is_healthy()
        return self.connection.status

    def logs(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        return self.audit_log.entries(limit)

    def engine_status(self) -> dict:
        return {
            "state": self.state.value,
            "silent": self.silent,
            "cycle_count": self.cycle_count,
            "connection_healthy": self.connection_healthy,
            "heartbeat_active": self.heartbeat.is_active,
        }

    def rule2_status(self) -> dict:
        branch = self.rule_state.last_branch
        if not self.is_running:
            description = "Rule engine is not running"
        elif not self.rule_state.correction_trigger:
            description = "Waiting for the correction trigger coil"
        elif branch is None:
            description = "Correction trigger is ON, waiting for a branch selector"
        else:
            description = f"Branch {branch.value} executed, waiting for the trigger to be released"

        return {
            "is_monitoring": self.is_running,
            "trigger_state": self.rule_state.correction_trigger,
            "last_executed_branch": branch.value if branch else None,
            "description": description,
        }

    # Poll loop

    async def run_cycle(self) -> bool:
        """Run one poll cycle; returns whether the connection was healthy"""
        self.cycle_count += 1

        if not self.connection_healthy or self.cycle_count % HEALTH_CHECK_EVERY_CYCLES == 0:
            await self._update_health(await self.connection.is_healthy())

        if not self.silent:
            logger.info("Poll cycle", extra={
                "component": "rule_engine",
                "cycle": self.cycle_count,
                "healthy": self.connection_healthy
            })

        if not self.connection_healthy:
            return False

        for rule in self.rules:
            try:
                await rule.evaluate(self.rule_state)
            except (ConnectionError, ConnectionException) as e:
                self.audit_log.error(f"{rule.title} failed: {e}", rule.name,
                                     {"error_type": type(e).__name__})
                # Re-check health at the start of the next cycle
                self.connection_healthy = False
            except Exception as e:
                self.audit_log.error(f"{rule.title} failed: {e}", rule.name,
                                     {"error_type": type(e).__name__})

        return True

    async def _update_health(self, healthy: bool):
        self.connection_healthy = healthy
        if healthy and self.is_running:
            if not self.heartbeat.is_active:
                self.heartbeat.start()
        elif not healthy:
            await self.heartbeat.stop()

    async def _run(self):
        logger.debug("Poll loop started", extra={"component": "rule_engine"})
        stop_event = self._stop_event

        while not stop_event.is_set():
            try:
                healthy = await self.run_cycle()
            except Exception as e:
                logger.error("Poll cycle failed", extra={
                    "component": "rule_engine",
                    "cycle": self.cycle_count,
                    "error": str(e)
                }, exc_info=True)
                healthy = False

            interval = HEALTHY_INTERVAL_SECONDS if healthy else UNHEALTHY_INTERVAL_SECONDS
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.debug("Poll loop finished", extra={
            "component": "rule_engine",
            "cycles": self.cycle_count
        })
