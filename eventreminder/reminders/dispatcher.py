"""
Dispatch cycle: one tick scans every outstanding event and sends one reminder
per event through the current transport session.

Delivery is at-least-once with tick granularity. Nothing is retried inside a
tick; an event whose reminder failed is still outstanding and is picked up
again by the next tick.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from .errors import MessageRejected, SessionLost, TransientScanFailure
from .formatting import format_recipient, render_reminder
from .metrics import (
    reminder_ticks_skipped_total,
    reminder_ticks_total,
    reminders_abandoned_total,
    reminders_rejected_total,
    reminders_sent_total,
    transport_session_lost_total,
)
from .scanner import OutstandingEventScanner
from .transport import Session, Transport

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(dt_timezone.utc))
    finished_at: Optional[datetime] = None
    session_id: Optional[str] = None
    scanned: int = 0
    sent: int = 0
    rejected: int = 0
    abandoned: int = 0
    scan_failed: bool = False
    session_lost: bool = False
    skipped: bool = False
    failed_recipients: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "session_id": self.session_id,
            "scanned": self.scanned,
            "sent": self.sent,
            "rejected": self.rejected,
            "abandoned": self.abandoned,
            "scan_failed": self.scan_failed,
            "session_lost": self.session_lost,
            "skipped": self.skipped,
        }


class DispatchCycle:
    def __init__(
        self,
        scanner: OutstandingEventScanner,
        transport: Transport,
        country_code: str = "91",
        display_zone: ZoneInfo = ZoneInfo("UTC"),
        due_format: str = "%m/%d/%Y, %I:%M:%S %p",
        send_timeout: float = 15.0,
    ):
        self.scanner = scanner
        self.transport = transport
        self.country_code = country_code
        self.display_zone = display_zone
        self.due_format = due_format
        self.send_timeout = send_timeout
        self.last_report: Optional[TickReport] = None
        self._tick_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._tick_lock.locked()

    async def run_tick(self, session: Session) -> TickReport:
        """Run one tick against ``session``. Never raises for dispatch failures."""
        if self._tick_lock.locked():
            # a tick from an older session may still be finishing
            logger.warning("⏭️ [Dispatch] Previous tick still running - skipping this tick")
            reminder_ticks_skipped_total.inc()
            return TickReport(session_id=session.id, skipped=True)

        async with self._tick_lock:
            report = TickReport(session_id=session.id)
            reminder_ticks_total.inc()
            try:
                await self._run(session, report)
            finally:
                report.finished_at = datetime.now(dt_timezone.utc)
                self.last_report = report
            return report

    async def _run(self, session: Session, report: TickReport) -> None:
        try:
            events = await self.scanner.scan()
        except TransientScanFailure as e:
            report.scan_failed = True
            logger.error(f"❌ [Dispatch] Error checking reminders, skipping tick: {e}")
            return
        except Exception:
            report.scan_failed = True
            logger.exception("❌ [Dispatch] Unexpected scan error, skipping tick")
            return

        report.scanned = len(events)
        if not events:
            logger.debug("[Dispatch] No outstanding events")
            return

        for index, event in enumerate(events):
            try:
                recipient = format_recipient(event.user_address, self.country_code)
                text = render_reminder(event, self.display_zone, self.due_format)
                await asyncio.wait_for(
                    self.transport.send(session, recipient, text),
                    timeout=self.send_timeout,
                )
            except SessionLost as e:
                report.session_lost = True
                report.abandoned = len(events) - index - 1
                reminders_abandoned_total.inc(report.abandoned)
                if session.mark_lost(str(e)):
                    transport_session_lost_total.inc()
                logger.error(
                    f"❌ [Dispatch] Session {session.id} lost while sending to {event.user_address}: {e} "
                    f"- abandoning {report.abandoned} remaining reminders"
                )
                return
            except MessageRejected as e:
                self._record_rejection(report, event.user_address)
                logger.warning(f"⚠️ [Dispatch] Failed to send to {event.user_address} for \"{event.event_name}\": {e}")
            except asyncio.TimeoutError:
                self._record_rejection(report, event.user_address)
                logger.warning(
                    f"⚠️ [Dispatch] Send to {event.user_address} for \"{event.event_name}\" "
                    f"timed out after {self.send_timeout}s"
                )
            except Exception:
                # unclassified adapter failure: treat as local to this message
                self._record_rejection(report, event.user_address)
                logger.exception(f"❌ [Dispatch] Unexpected error sending to {event.user_address}")
            else:
                report.sent += 1
                reminders_sent_total.inc()
                logger.info(f"✅ [Dispatch] Message sent to {event.user_address} for \"{event.event_name}\"")

        logger.info(
            f"📊 [Dispatch] Tick done: {report.sent}/{report.scanned} sent, {report.rejected} failed"
        )

    @staticmethod
    def _record_rejection(report: TickReport, address: str) -> None:
        report.rejected += 1
        report.failed_recipients.append(address)
        reminders_rejected_total.inc()
