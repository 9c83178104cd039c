import re
from typing import Optional
from zoneinfo import ZoneInfo

from eventreminder.utils.timezone import format_local
from .errors import InvalidAddress
from .repository import OutstandingEvent

NO_DESCRIPTION = "No description"
DEFAULT_PRIORITY = "Normal"

_SEPARATORS = re.compile(r"[\s\-.()]")


def format_recipient(address: Optional[str], country_code: str) -> str:
    """Turn a stored local-format address into an international recipient.

    "9876543210" with country code "91" becomes "919876543210". An address
    written with a leading "+" already carries its country code.
    """
    cleaned = _SEPARATORS.sub("", address or "")
    if cleaned.startswith("+"):
        number = cleaned[1:]
    else:
        number = f"{country_code}{cleaned}"
    if not cleaned.lstrip("+") or not number.isdigit():
        raise InvalidAddress(address or "", reason="not a phone number")
    return number


def render_priority(priority: Optional[str]) -> str:
    if not priority or not priority.strip():
        return DEFAULT_PRIORITY
    return priority.strip().capitalize()


def render_reminder(event: OutstandingEvent, zone: ZoneInfo, due_format: str) -> str:
    due = format_local(event.due_at, zone, due_format)
    description = event.description if event.description and event.description.strip() else NO_DESCRIPTION
    return (
        f'⏰ Reminder: "{event.event_name}"\n'
        f"📅 {due}\n"
        f"📝 {description}\n"
        f"Priority: {render_priority(event.priority)}"
    )
