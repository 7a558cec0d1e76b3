import asyncio
from datetime import datetime
from typing import Optional

from weld_control.app.core.plc_connection import PLCConnection
from weld_control.app.core.register_access import RegisterAccess, coil_label
from weld_control.app.models.connection import ConnectionState
from weld_control.app.utilities.telemetry import logger

HEARTBEAT_INTERVAL_SECONDS = 1.0


class HeartbeatPublisher:
    """
    Writes the heartbeat coil ON at a fixed rate while the PLC is connected.

    Writes are neither verified nor audited; a failed beat only reaches the
    application log and the next beat goes out on schedule.
    """

    def __init__(self, registers: RegisterAccess, connection: PLCConnection, coil_address: int,
                 interval: float = HEARTBEAT_INTERVAL_SECONDS):
        self.registers = registers
        self.connection = connection
        self.coil_address = coil_address
        self.interval = interval
        self.last_beat_time: Optional[datetime] = None
        self.beat_count = 0
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def plc_connected(self) -> bool:
        return self.connection.state == ConnectionState.CONNECTED and self.connection.session_open

    def start(self) -> bool:
        """Start beating; must be called from the running event loop"""
        if self.is_active:
            return False

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info("Heartbeat started", extra={
            "component": "heartbeat",
            "coil": coil_label(self.coil_address),
            "interval": self.interval
        })
        return True

    async def stop(self) -> bool:
        """Stop beating; an in-flight write is allowed to finish"""
        if not self.is_active:
            self._task = None
            return False

        self._stop_event.set()
        task, self._task = self._task, None
        if task is not asyncio.current_task():
            await task

        logger.info("Heartbeat stopped", extra={
            "component": "heartbeat",
            "beat_count": self.beat_count
        })
        return True

    async def beat(self) -> bool:
        """Send one heartbeat write; returns whether it went out"""
        if not self.plc_connected:
            return False

        try:
            await self.registers.write_coil(self.coil_address, True)
        except Exception as e:
            logger.warning("Heartbeat write failed", extra={
                "component": "heartbeat",
                "coil": coil_label(self.coil_address),
                "error": str(e)
            })
            return False

        self.last_beat_time = datetime.now()
        self.beat_count += 1
        return True

    def status(self) -> dict:
        return {
            "is_active": self.is_active,
            "is_plc_connected": self.plc_connected,
            "interval": self.interval,
            "coil": coil_label(self.coil_address),
            "last_beat_time": self.last_beat_time.isoformat() if self.last_beat_time else None,
            "beat_count": self.beat_count,
        }

    async def _run(self):
        stop_event = self._stop_event
        while not stop_event.is_set():
            await self.beat()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
