from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventreminder.models.user import Event, EventStatus, User
from eventreminder.utils.timezone import to_utc_aware
from .errors import StoreUnavailable


@dataclass(frozen=True)
class OutstandingEvent:
    user_id: int
    user_address: str
    event_id: int
    event_name: str
    due_at: datetime
    description: Optional[str] = None
    priority: Optional[str] = None


def find_outstanding_events(db: Session) -> List[OutstandingEvent]:
    """Every outstanding event for every user, due or not.

    Raises StoreUnavailable if the store cannot be queried.
    """
    stmt = (
        select(
            User.id,
            User.phone_number,
            Event.id,
            Event.name,
            Event.due_at,
            Event.description,
            Event.priority,
        )
        .join(Event, Event.user_id == User.id)
        .where(Event.status == EventStatus.OUTSTANDING.value)
        .order_by(User.id, Event.id)
    )
    try:
        rows = db.execute(stmt).all()
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"outstanding event query failed: {e}") from e
    return [
        OutstandingEvent(
            user_id=user_id,
            user_address=address,
            event_id=event_id,
            event_name=name,
            due_at=to_utc_aware(due_at),
            description=description,
            priority=priority,
        )
        for user_id, address, event_id, name, due_at, description, priority in rows
    ]
