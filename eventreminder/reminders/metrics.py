from prometheus_client import Counter, Gauge


reminder_ticks_total = Counter(
    "reminder_dispatch_ticks_total",
    "Total dispatch ticks run",
)

reminder_ticks_skipped_total = Counter(
    "reminder_dispatch_ticks_skipped_total",
    "Ticks skipped because a previous tick was still running",
)

reminder_scan_failures_total = Counter(
    "reminder_scan_failures_total",
    "Scans that failed because the event store was unavailable",
)

reminder_outstanding_events = Gauge(
    "reminder_outstanding_events",
    "Outstanding events seen by the last successful scan",
)

reminders_sent_total = Counter(
    "reminders_sent_total",
    "Total reminder messages accepted by the transport",
)

reminders_rejected_total = Counter(
    "reminders_rejected_total",
    "Total reminder messages rejected for a single recipient",
)

reminders_abandoned_total = Counter(
    "reminders_abandoned_total",
    "Sends abandoned in a tick after the transport session was lost",
)

transport_session_lost_total = Counter(
    "reminder_transport_session_lost_total",
    "Transport sessions lost",
)

transport_connect_failures_total = Counter(
    "reminder_transport_connect_failures_total",
    "Failed transport connection attempts",
)

supervisor_restarts_total = Counter(
    "reminder_supervisor_restarts_total",
    "Supervisor restart cycles",
)

supervisor_connected = Gauge(
    "reminder_supervisor_connected",
    "1 while a transport session is connected",
)
