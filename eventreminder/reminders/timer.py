import asyncio
import logging
from typing import Optional

from .dispatcher import DispatchCycle
from .transport import Session

logger = logging.getLogger(__name__)


class DispatchTimer:
    """Runs dispatch ticks for one session on a fixed interval.

    The next tick is scheduled only after the previous one has completed, so
    ticks from one timer never overlap.
    """

    def __init__(self, cycle: DispatchCycle, interval_seconds: float = 60):
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.session: Optional[Session] = None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, session: Session) -> None:
        if self.running:
            raise RuntimeError("dispatch timer already running; stop it before starting a new session")
        self.session = session
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(session), name=f"dispatch-timer-{session.id}")
        logger.info(f"⏰ [Timer] Dispatching every {self.interval_seconds}s on session {session.id}")

    async def stop(self) -> None:
        """Stop scheduling ticks and wait for an in-flight tick to finish."""
        self._stop.set()
        task, self._task = self._task, None
        if task is not None:
            await task
        self.session = None

    async def _loop(self, session: Session) -> None:
        while not self._stop.is_set() and session.alive:
            try:
                report = await self.cycle.run_tick(session)
            except Exception:
                # a broken tick must not end dispatching for a live session
                logger.exception(f"❌ [Timer] Tick on session {session.id} failed")
                report = None
            if (report is not None and report.session_lost) or not session.alive:
                logger.info(f"⏹️ [Timer] Session {session.id} lost - no further ticks on it")
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
