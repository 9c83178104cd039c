import asyncio

import pytest

from eventreminder.reminders.dispatcher import DispatchCycle
from eventreminder.reminders.errors import ConnectError, SessionLost
from eventreminder.reminders.repository import OutstandingEvent
from eventreminder.reminders.supervisor import ConnectionSupervisor, SupervisorState
from eventreminder.reminders.timer import DispatchTimer
from tests.fakes import FakeTransport, utc, wait_until

BACKOFF = 0.05


class StaticScanner:
    def __init__(self, events=()):
        self.events = list(events)
        self.calls = 0

    async def scan(self):
        self.calls += 1
        return self.events


def _events(*addresses):
    return [
        OutstandingEvent(
            user_id=i, user_address=address, event_id=i, event_name=f"event-{i}", due_at=utc(2026, 10, 19)
        )
        for i, address in enumerate(addresses, start=1)
    ]


def make_supervisor(transport, scanner=None, interval=10.0, backoff=BACKOFF):
    cycle = DispatchCycle(scanner or StaticScanner(), transport)
    timer = DispatchTimer(cycle, interval_seconds=interval)
    return ConnectionSupervisor(transport, timer, backoff_seconds=backoff, connect_timeout=1)


async def stop_and_join(supervisor, task):
    supervisor.stop()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_connect_then_dispatch():
    scanner = StaticScanner(_events("9876543210"))
    transport = FakeTransport()
    supervisor = make_supervisor(transport, scanner)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: len(transport.sends) == 1)

    assert supervisor.state == SupervisorState.CONNECTED
    assert supervisor.session is transport.sessions[0]
    assert transport.sends[0].recipient == "919876543210"
    assert supervisor.transitions[0] == (SupervisorState.DISCONNECTED, SupervisorState.CONNECTING)
    assert supervisor.transitions[1] == (SupervisorState.CONNECTING, SupervisorState.CONNECTED)

    await stop_and_join(supervisor, task)
    assert supervisor.state == SupervisorState.DISCONNECTED
    assert transport.closed == ["s1"]


@pytest.mark.asyncio
async def test_no_dispatch_before_connected():
    scanner = StaticScanner(_events("9876543210"))
    transport = FakeTransport(connect_outcomes=[ConnectError("qr not scanned")])
    supervisor = make_supervisor(transport, scanner, backoff=10)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.state == SupervisorState.RESTARTING)

    assert scanner.calls == 0
    assert transport.sends == []
    await stop_and_join(supervisor, task)


@pytest.mark.asyncio
async def test_connect_errors_retry_after_backoff_forever():
    transport = FakeTransport(connect_outcomes=[ConnectError("browser crashed")] * 6)
    supervisor = make_supervisor(transport)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: len(transport.connect_calls) >= 7, timeout=5)

    assert not task.done()
    assert supervisor.connect_failures == 6
    assert supervisor.restarts >= 6
    gaps = [b - a for a, b in zip(transport.connect_calls, transport.connect_calls[1:])]
    assert all(gap >= BACKOFF - 0.005 for gap in gaps)
    await wait_until(lambda: supervisor.state == SupervisorState.CONNECTED)

    await stop_and_join(supervisor, task)


@pytest.mark.asyncio
async def test_retry_does_not_happen_before_backoff():
    transport = FakeTransport(connect_outcomes=[ConnectError("down")] * 3)
    supervisor = make_supervisor(transport, backoff=0.3)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: len(transport.connect_calls) == 1)
    await asyncio.sleep(0.15)

    assert len(transport.connect_calls) == 1
    await wait_until(lambda: len(transport.connect_calls) == 2, timeout=2)
    await stop_and_join(supervisor, task)


@pytest.mark.asyncio
async def test_unexpected_connect_exception_is_retried():
    transport = FakeTransport(connect_outcomes=[OSError("chromium missing")])
    supervisor = make_supervisor(transport)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.state == SupervisorState.CONNECTED)

    assert supervisor.connect_failures == 1
    assert len(transport.connect_calls) == 2
    await stop_and_join(supervisor, task)


@pytest.mark.asyncio
async def test_session_lost_during_tick_restarts_exactly_once():
    transport = FakeTransport()

    def lost_on_first_session(session, recipient):
        if session is transport.sessions[0]:
            # the adapter also reports the disconnect itself
            session.mark_lost("disconnected")
            return SessionLost("disconnected")
        return None

    transport.send_outcomes = {
        "911111111111": lost_on_first_session,
        "912222222222": lost_on_first_session,
    }
    scanner = StaticScanner(_events("1111111111", "2222222222"))
    supervisor = make_supervisor(transport, scanner)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: len(transport.sessions) == 2 and supervisor.state == SupervisorState.CONNECTED)
    await wait_until(lambda: len(transport.sends) == 3)

    assert supervisor.restarts == 1
    assert supervisor.session is transport.sessions[1]
    assert not transport.sessions[0].alive
    assert [s.session_id for s in transport.sends] == ["s1", "s2", "s2"]
    await stop_and_join(supervisor, task)
    assert supervisor.restarts == 1


@pytest.mark.asyncio
async def test_session_dropped_outside_tick_triggers_restart():
    transport = FakeTransport()
    supervisor = make_supervisor(transport)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.state == SupervisorState.CONNECTED)
    transport.sessions[0].mark_lost("phone logged out")
    await wait_until(lambda: len(transport.sessions) == 2 and supervisor.state == SupervisorState.CONNECTED)

    assert supervisor.restarts == 1
    assert (SupervisorState.CONNECTED, SupervisorState.RESTARTING) in supervisor.transitions
    assert (SupervisorState.RESTARTING, SupervisorState.CONNECTING) in supervisor.transitions
    await stop_and_join(supervisor, task)


@pytest.mark.asyncio
async def test_rapid_restarts_never_overlap_ticks():
    transport = FakeTransport(send_delay=0.01)

    def lose_every_session(session, recipient):
        return SessionLost("flaky")

    transport.send_outcomes = {"919876543210": lose_every_session}
    scanner = StaticScanner(_events("9876543210", "9000000000"))
    cycle = DispatchCycle(scanner, transport)
    active = {"now": 0, "max": 0}
    original = cycle.run_tick

    async def tracked(session):
        active["now"] += 1
        active["max"] = max(active["max"], active["now"])
        try:
            return await original(session)
        finally:
            active["now"] -= 1

    cycle.run_tick = tracked
    supervisor = ConnectionSupervisor(
        transport, DispatchTimer(cycle, interval_seconds=0.001), backoff_seconds=0.001
    )

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.restarts >= 5)
    await stop_and_join(supervisor, task)

    assert active["max"] == 1


@pytest.mark.asyncio
async def test_stop_during_backoff_exits_promptly():
    transport = FakeTransport(connect_outcomes=[ConnectError("down")])
    supervisor = make_supervisor(transport, backoff=60)

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.state == SupervisorState.RESTARTING)
    await stop_and_join(supervisor, task)

    assert len(transport.connect_calls) == 1
    assert supervisor.state == SupervisorState.DISCONNECTED


@pytest.mark.asyncio
async def test_snapshot_reports_state_and_last_tick():
    transport = FakeTransport()
    supervisor = make_supervisor(transport, StaticScanner(_events("9876543210")))

    task = asyncio.create_task(supervisor.run())
    await wait_until(lambda: supervisor.timer.cycle.last_report is not None)

    snap = supervisor.snapshot()
    assert snap["state"] == "connected"
    assert snap["session_id"] == "s1"
    assert snap["last_tick"]["sent"] == 1
    await stop_and_join(supervisor, task)
