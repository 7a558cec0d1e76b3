from datetime import datetime
import time
from typing import Any, Callable, List, Optional, Tuple
import asyncio

from pymodbus.exceptions import ModbusException
from pymodbus.client import AsyncModbusTcpClient

from weld_control.app.core.audit_log import AuditLog
from weld_control.app.core.engine_exceptions import ConnectionError, ProtocolValidationError
from weld_control.app.models.connection import (
    ConnectionMetrics, ConnectionState, ConnectionStatus, ModbusOperation
)
from weld_control.app.models.plc_config import ConnectionConfig
from weld_control.app.utilities.telemetry import logger

# Validation probes: holding register 0 first, then the other data types
HEALTH_CHECK_REGISTER = 0
HEALTH_CHECK_COUNT = 1
PROBE_ADDRESSES = (0, 1, 2, 3, 4, 5, 10, 100)
PROBE_OPERATIONS = ("read_input", "read_coil", "read_discrete")

AUDIT_SOURCE = "plc_connection"

StatusListener = Callable[[ConnectionStatus], None]


class PLCConnection:
    """
    Owns the single Modbus TCP session to the welding machine PLC.

    Every request goes through ``execute_operation`` which holds
    ``operation_lock``, so only one request is ever in flight on the session.
    The connection state is only changed through ``_set_state``.
    """

    def __init__(self, config: ConnectionConfig, audit_log: AuditLog,
                 client_factory: Callable[..., Any] = AsyncModbusTcpClient):
        self.config = config
        self.audit_log = audit_log
        self.client = None
        self.metrics = ConnectionMetrics()
        self.state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self.operation_lock = asyncio.Lock()
        self._client_factory = client_factory
        self._status_listeners: List[StatusListener] = []

        logger.debug("PLC connection initialized", extra={
            "component": "plc_connection",
            "host": self.config.host,
            "port": self.config.port,
            "unit_id": self.config.unit_id
        })

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus.from_state(self.state, self.last_error)

    @property
    def session_open(self) -> bool:
        return self.client is not None and bool(self.client.connected)

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a callback invoked with the new status on every state change"""
        self._status_listeners.append(listener)

        def remove():
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    async def connect(self, config: Optional[ConnectionConfig] = None) -> ConnectionStatus:
        """
        Open and validate the session, retrying once after the reconnect interval.

        Raises ConnectionError when the retry fails as well; the status is then
        left disconnected with the last error recorded. A live session opened
        with different settings is closed and replaced.
        """
        if config is None:
            config = self.config

        if self.state == ConnectionState.CONNECTED and self.session_open and config == self.config:
            return self.status

        if self.client is not None:
            if self.session_open:
                previous = self.config
                self.audit_log.info(
                    f"Closing PLC session to {previous.host}:{previous.port} to reconnect", AUDIT_SOURCE,
                    {"host": previous.host, "port": previous.port, "unit_id": previous.unit_id}
                )
            await self._drop_session(self.last_error)

        self.config = config
        total_attempts = 1 + config.max_reconnect_attempts
        last_exception: Optional[Exception] = None
        target = {"host": config.host, "port": config.port, "unit_id": config.unit_id}

        self.audit_log.info(f"Connecting to PLC {config.host}:{config.port}", AUDIT_SOURCE, target)

        for attempt in range(1, total_attempts + 1):
            self._set_state(ConnectionState.CONNECTING, self.last_error)
            try:
                await self._open_session(config)
            except Exception as e:
                last_exception = e
                self._record_failed_connection(str(e))
                self.audit_log.error(
                    f"PLC connection attempt {attempt} failed: {e}", AUDIT_SOURCE,
                    {**target, "attempt": attempt}
                )
                if attempt < total_attempts:
                    self.audit_log.info(
                        f"Retrying PLC connection in {config.reconnect_interval:g}s", AUDIT_SOURCE,
                        {**target, "attempt": attempt + 1}
                    )
                    await asyncio.sleep(config.reconnect_interval)
                continue

            self._record_successful_connection()
            self.audit_log.info(f"PLC connected at {config.host}:{config.port}", AUDIT_SOURCE, target)
            return self.status

        raise ConnectionError(
            f"Failed to connect to {config.host}:{config.port} after {total_attempts} attempts: {last_exception}",
            source=AUDIT_SOURCE
        ) from last_exception

    async def disconnect(self) -> bool:
        """Close the session; returns False when there was nothing to close"""
        async with self.operation_lock:
            client, self.client = self.client, None
            was_connected = self.state == ConnectionState.CONNECTED
            if client is not None:
                self._close_client(client)

        if client is None and not was_connected:
            return False

        self._set_state(ConnectionState.DISCONNECTED, None)
        self.audit_log.info("PLC disconnected", AUDIT_SOURCE)
        return True

    async def validate(self, client) -> Tuple[str, int]:
        """
        Probe a freshly opened session until one read succeeds.

        Holding register 0 goes first, then input registers, coils and discrete
        inputs at each probe address. Returns the probe that answered.
        """
        probes = [("read_holding", HEALTH_CHECK_REGISTER)]
        probes += [(op, address) for op in PROBE_OPERATIONS for address in PROBE_ADDRESSES]

        last_error = None
        for operation_type, address in probes:
            operation = ModbusOperation(operation_type, address, count=HEALTH_CHECK_COUNT)
            try:
                await self._execute_modbus_operation(client, operation)
            except (ModbusException, asyncio.TimeoutError, OSError) as e:
                last_error = e
                logger.debug("Validation probe failed", extra={
                    "component": "plc_connection",
                    "operation_type": operation_type,
                    "address": address,
                    "error": str(e)
                })
                continue

            logger.debug("Validation probe succeeded", extra={
                "component": "plc_connection",
                "operation_type": operation_type,
                "address": address
            })
            return operation_type, address

        raise ProtocolValidationError(
            f"PLC did not answer any validation probe (last error: {last_error})",
            source=AUDIT_SOURCE
        )

    async def is_healthy(self) -> bool:
        """
        True only when the session is open and the status says connected.

        Drift between the two is reconciled here: a session that dropped is
        marked disconnected, and an open session with a stale status is probed
        once before being marked connected again.
        """
        session_open = self.session_open

        if session_open and self.state == ConnectionState.CONNECTED:
            return True

        if self.state == ConnectionState.CONNECTED:
            await self._drop_session("Connection lost")
            self.audit_log.error("PLC connection lost", AUDIT_SOURCE)
            return False

        if session_open and self.state != ConnectionState.CONNECTING:
            try:
                await self.execute_operation(
                    ModbusOperation("read_holding", HEALTH_CHECK_REGISTER, count=HEALTH_CHECK_COUNT)
                )
            except Exception as e:
                await self._drop_session(str(e), state=ConnectionState.ERROR)
                self.audit_log.error(f"PLC connection check failed: {e}", AUDIT_SOURCE)
                return False

            self._record_successful_connection()
            self.audit_log.info("PLC connection verified", AUDIT_SOURCE)
            return True

        return False

    async def execute_operation(self, operation: ModbusOperation) -> Any:
        """Execute one Modbus operation on the shared session"""
        start_time = time.time()
        self.metrics.total_requests += 1

        logger.debug("Executing operation", extra={
            "component": "plc_connection",
            "operation_type": operation.operation_type,
            "address": operation.address,
            "label": operation.label
        })

        try:
            async with self.operation_lock:
                if not self.session_open:
                    raise ConnectionError("PLC is not connected", address=operation.address,
                                          source=AUDIT_SOURCE)
                result = await self._execute_modbus_operation(self.client, operation)

            self._record_successful_operation(start_time)
            return result

        except Exception as e:
            self._record_failed_operation(operation, str(e))
            raise

    # Private methods

    def _set_state(self, state: ConnectionState, last_error: Optional[str] = None):
        previous = self.status
        self.state = state
        self.last_error = last_error
        current = self.status
        if current == previous:
            return

        for listener in list(self._status_listeners):
            try:
                listener(current)
            except Exception as e:
                logger.warning("Status listener failed", extra={
                    "component": "plc_connection",
                    "error": str(e)
                })

    async def _open_session(self, config: ConnectionConfig):
        client = self._client_factory(host=config.host, port=config.port, timeout=config.timeout)
        async with self.operation_lock:
            try:
                logger.debug("Opening TCP session", extra={
                    "component": "plc_connection",
                    "host": config.host,
                    "port": config.port
                })
                await client.connect()
                if not client.connected:
                    raise ConnectionError(f"Unable to open TCP session to {config.host}:{config.port}",
                                          source=AUDIT_SOURCE)
                await self.validate(client)
            except BaseException:
                self._close_client(client)
                raise
            previous, self.client = self.client, client
            if previous is not None and previous is not client:
                self._close_client(previous)

    async def _drop_session(self, reason: str, state: ConnectionState = ConnectionState.DISCONNECTED):
        async with self.operation_lock:
            client, self.client = self.client, None
            if client is not None:
                self._close_client(client)
        self._set_state(state, reason)

    def _close_client(self, client):
        try:
            client.close()
        except Exception as e:
            logger.warning("Error closing client connection", extra={
                "component": "plc_connection",
                "error": str(e)
            })

    def _record_successful_connection(self):
        self.metrics.last_successful_connection = datetime.now()
        self._set_state(ConnectionState.CONNECTED, None)

        logger.debug("Connection established successfully", extra={
            "component": "plc_connection",
            "timestamp": self.metrics.last_successful_connection.isoformat()
        })

    def _record_failed_connection(self, error_message: str):
        self.metrics.last_error = error_message
        self.metrics.last_error_time = datetime.now()
        self._set_state(ConnectionState.ERROR, error_message)

        logger.error("Connection establishment failed", extra={
            "component": "plc_connection",
            "error": error_message
        })

    def _update_avg_response_time(self):
        if self.metrics.response_times:
            self.metrics.avg_response_time = sum(self.metrics.response_times) / len(self.metrics.response_times)

    def _record_successful_operation(self, start_time: float):
        response_time = time.time() - start_time
        self.metrics.response_times.append(response_time)
        self._update_avg_response_time()
        self.metrics.successful_requests += 1

    def _record_failed_operation(self, operation: ModbusOperation, error_message: str):
        self.metrics.failed_requests += 1
        self.metrics.last_error = error_message
        self.metrics.last_error_time = datetime.now()

        logger.error("Operation failed", extra={
            "component": "plc_connection",
            "operation_type": operation.operation_type,
            "address": operation.address,
            "label": operation.label,
            "error": error_message,
            "failed_count": self.metrics.failed_requests,
            "total_requests": self.metrics.total_requests
        })

    async def _execute_modbus_operation(self, client, operation: ModbusOperation) -> Any:
        unit_id = self.config.unit_id
        address = operation.address
        label = operation.label or str(address)

        # Read operations
        if operation.operation_type == 'read_holding':
            result = await client.read_holding_registers(address, count=operation.count, slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error reading holding register {label}: {result}")
            return list(result.registers)

        elif operation.operation_type == 'read_input':
            result = await client.read_input_registers(address, count=operation.count, slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error reading input register {label}: {result}")
            return list(result.registers)

        elif operation.operation_type == 'read_coil':
            result = await client.read_coils(address, count=operation.count, slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error reading coil {label}: {result}")
            # Bits come back padded to a whole byte
            return list(result.bits[:operation.count])

        elif operation.operation_type == 'read_discrete':
            result = await client.read_discrete_inputs(address, count=operation.count, slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error reading discrete input {label}: {result}")
            return list(result.bits[:operation.count])

        # Write operations
        elif operation.operation_type == 'write_register':
            result = await client.write_register(address, operation.values, slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error writing register {label}: {result}")
            return True

        elif operation.operation_type == 'write_registers':
            result = await client.write_registers(address, list(operation.values), slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error writing registers {label}: {result}")
            return True

        elif operation.operation_type == 'write_coil':
            result = await client.write_coil(address, bool(operation.values), slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error writing coil {label}: {result}")
            return True

        elif operation.operation_type == 'write_coils':
            result = await client.write_coils(address, [bool(v) for v in operation.values], slave=unit_id)
            if result.isError():
                raise ModbusException(f"Modbus error writing coils {label}: {result}")
            return True

        else:
            raise ValueError(f"Unknown operation type: {operation.operation_type}")
