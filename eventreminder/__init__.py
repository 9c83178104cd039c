"""Event reminder service: periodic dispatch of outstanding event reminders
over a messaging transport, plus a live WebSocket reminder channel."""

__version__ = "0.1.0"
