"""
Connection supervisor.

Owns the transport session lifecycle: connect, start dispatching on the new
session, wait until the session is lost, then back off for a fixed delay and
start over. It never gives up; only ``stop()`` ends ``run()``.

    DISCONNECTED -> CONNECTING -> CONNECTED -> RESTARTING -> CONNECTING ...
    CONNECTING -> RESTARTING (connect failed)
"""
import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple

from .errors import ConnectError
from .metrics import (
    supervisor_connected,
    supervisor_restarts_total,
    transport_connect_failures_total,
)
from .timer import DispatchTimer
from .transport import Session, Transport

logger = logging.getLogger(__name__)


class SupervisorState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RESTARTING = "restarting"


class ConnectionSupervisor:
    def __init__(
        self,
        transport: Transport,
        timer: DispatchTimer,
        backoff_seconds: float = 5,
        connect_timeout: float = 30,
    ):
        self.transport = transport
        self.timer = timer
        self.backoff_seconds = backoff_seconds
        self.connect_timeout = connect_timeout

        self.state = SupervisorState.DISCONNECTED
        self.session: Optional[Session] = None
        self.restarts = 0
        self.connect_failures = 0
        self.transitions: Deque[Tuple[SupervisorState, SupervisorState]] = deque(maxlen=100)
        self._stopping = asyncio.Event()

    def _set_state(self, new_state: SupervisorState) -> None:
        if new_state == self.state:
            return
        self.transitions.append((self.state, new_state))
        logger.debug(f"[Supervisor] {self.state.value} -> {new_state.value}")
        self.state = new_state
        supervisor_connected.set(1 if new_state == SupervisorState.CONNECTED else 0)

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        """Request shutdown. No new ticks start; an in-flight tick may finish."""
        if not self._stopping.is_set():
            logger.info("🛑 [Supervisor] Shutdown requested")
        self._stopping.set()

    async def run(self) -> None:
        logger.info("🚀 [Supervisor] Starting reminder dispatch supervisor")
        try:
            while not self._stopping.is_set():
                session = await self._connect()
                if session is not None:
                    await self._serve(session)
                if self._stopping.is_set():
                    break
                self._set_state(SupervisorState.RESTARTING)
                self.restarts += 1
                supervisor_restarts_total.inc()
                logger.info(f"🔄 [Supervisor] Restarting transport in {self.backoff_seconds} seconds...")
                await self._wait_for_stop(self.backoff_seconds)
        finally:
            self._set_state(SupervisorState.DISCONNECTED)
            logger.info("👋 [Supervisor] Stopped")

    async def _connect(self) -> Optional[Session]:
        self._set_state(SupervisorState.CONNECTING)
        try:
            return await asyncio.wait_for(self.transport.connect(), timeout=self.connect_timeout)
        except ConnectError as e:
            logger.error(f"❌ [Supervisor] Transport connection failed: {e}")
        except asyncio.TimeoutError:
            logger.error(f"❌ [Supervisor] Transport connection timed out after {self.connect_timeout}s")
        except Exception:
            logger.exception("❌ [Supervisor] Unexpected error while connecting transport")
        self.connect_failures += 1
        transport_connect_failures_total.inc()
        return None

    async def _serve(self, session: Session) -> None:
        # Ticks already running keep their own reference to the old session
        self.session = session
        self._set_state(SupervisorState.CONNECTED)
        logger.info(f"📲 [Supervisor] Transport ready (session {session.id})")
        self.timer.start(session)

        lost = asyncio.create_task(session.wait_lost())
        stopping = asyncio.create_task(self._stopping.wait())
        try:
            await asyncio.wait({lost, stopping}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            lost.cancel()
            stopping.cancel()
            await self.timer.stop()
            try:
                await self.transport.close(session)
            except Exception:
                logger.exception(f"⚠️ [Supervisor] Error closing session {session.id}")

        if not self._stopping.is_set():
            logger.error(f"❌ [Supervisor] Session {session.id} lost: {session.lost_reason}")

    async def _wait_for_stop(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def snapshot(self) -> Dict[str, Any]:
        report = self.timer.cycle.last_report
        return {
            "state": self.state.value,
            "session_id": self.session.id if self.session and self.session.alive else None,
            "restarts": self.restarts,
            "connect_failures": self.connect_failures,
            "last_tick": report.as_dict() if report else None,
        }
