import asyncio
import logging
from typing import List

from sqlalchemy.orm import sessionmaker

from .errors import StoreUnavailable, TransientScanFailure
from .metrics import reminder_scan_failures_total, reminder_outstanding_events
from .repository import OutstandingEvent, find_outstanding_events

logger = logging.getLogger(__name__)


class OutstandingEventScanner:
    """Reads every outstanding event across all users.

    Due and not-yet-due events are both returned: a reminder goes out for every
    pending item on every tick.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _scan_blocking(self) -> List[OutstandingEvent]:
        db = self.session_factory()
        try:
            return find_outstanding_events(db)
        finally:
            db.close()

    async def scan(self) -> List[OutstandingEvent]:
        try:
            events = await asyncio.to_thread(self._scan_blocking)
        except StoreUnavailable as e:
            reminder_scan_failures_total.inc()
            raise TransientScanFailure(str(e)) from e
        reminder_outstanding_events.set(len(events))
        logger.debug(f"🔎 [Scanner] {len(events)} outstanding events")
        return events
