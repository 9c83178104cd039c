from typing import Optional

from sqlalchemy.orm import sessionmaker

from eventreminder.core.config import ReminderSettings
from .dispatcher import DispatchCycle
from .scanner import OutstandingEventScanner
from .supervisor import ConnectionSupervisor
from .timer import DispatchTimer
from .transport import Transport, build_transport


def create_supervisor(
    settings: ReminderSettings,
    session_factory: sessionmaker,
    transport: Optional[Transport] = None,
) -> ConnectionSupervisor:
    """Wire scanner, dispatch cycle, timer and supervisor from settings."""
    transport = transport or build_transport(settings)
    cycle = DispatchCycle(
        scanner=OutstandingEventScanner(session_factory),
        transport=transport,
        country_code=settings.DEFAULT_COUNTRY_CODE,
        display_zone=settings.display_zone,
        due_format=settings.DUE_TIME_FORMAT,
        send_timeout=settings.SEND_TIMEOUT_SECONDS,
    )
    timer = DispatchTimer(cycle, interval_seconds=settings.DISPATCH_INTERVAL_SECONDS)
    return ConnectionSupervisor(
        transport=transport,
        timer=timer,
        backoff_seconds=settings.RECONNECT_BACKOFF_SECONDS,
        connect_timeout=settings.SEND_TIMEOUT_SECONDS * 2,
    )
