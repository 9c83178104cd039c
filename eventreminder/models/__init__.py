from .user import User, Event, EventStatus, EventPriority

__all__ = ["User", "Event", "EventStatus", "EventPriority"]
