"""Tests for the push-channel connection manager."""

import json
import logging

from campaignpulse.models import ConnectionState

URL = "wss://dashboard.example.com/ws"


def _open(manager, factory):
    manager.establish(URL)
    factory.latest.open()
    return factory.latest


# ---------------------------------------------------------------------------
# establish / open
# ---------------------------------------------------------------------------

class TestEstablish:
    def test_connecting_then_open(self, manager, factory):
        manager.establish(URL)
        assert manager.state is ConnectionState.CONNECTING
        assert factory.latest.started is True
        assert factory.latest.url == URL
        assert manager.is_connected is False

        factory.latest.open()
        assert manager.state is ConnectionState.OPEN
        assert manager.is_connected is True

    def test_one_transport_at_a_time(self, manager, factory):
        manager.establish(URL)
        first = factory.latest
        manager.establish(URL)
        assert first.closed is True
        assert len(factory.transports) == 2
        # late callbacks from the replaced transport are ignored
        first.open()
        assert manager.state is ConnectionState.CONNECTING

    def test_establish_after_teardown_is_noop(self, manager, factory):
        manager.teardown()
        manager.establish(URL)
        assert factory.transports == []
        assert manager.state is ConnectionState.CLOSED

    def test_factory_failure_schedules_reconnect(self, manager, factory, loop):
        factory.fail = True
        manager.establish(URL)
        assert manager.state is ConnectionState.CLOSED
        assert len(loop.pending_timers) == 1

        factory.fail = False
        loop.advance(3.0)
        assert len(factory.transports) == 1
        assert manager.state is ConnectionState.CONNECTING


# ---------------------------------------------------------------------------
# Receive path
# ---------------------------------------------------------------------------

class TestReceive:
    def test_decoded_frame_reaches_consumer(self, manager, factory, received):
        transport = _open(manager, factory)
        frame = {"type": "notification", "notification": {"title": "t", "message": "m"}}
        transport.deliver(json.dumps(frame))
        assert received == [frame]
        assert manager.last_message == frame

    def test_other_frames_kept_as_last_message(self, manager, factory, received):
        transport = _open(manager, factory)
        transport.deliver('{"type": "connection", "message": "hi", "extra": 1}')
        assert manager.last_message == {"type": "connection", "message": "hi", "extra": 1}

    def test_bytes_frame(self, manager, factory, received):
        transport = _open(manager, factory)
        transport.deliver(b'{"type": "pong"}')
        assert received == [{"type": "pong"}]

    def test_malformed_frames_are_discarded(self, manager, factory, received, caplog):
        transport = _open(manager, factory)
        transport.deliver('{"type": "pong"}')
        for bad in ("{not json", "[1, 2]", "", "42"):
            transport.deliver(bad)
        assert received == [{"type": "pong"}]
        assert manager.last_message == {"type": "pong"}
        assert manager.is_connected is True
        assert "Discarding malformed frame" in caplog.text

    def test_decode_never_raises(self, manager):
        assert manager.decode("{{{") is None
        assert manager.decode(None) is None
        assert manager.decode('{"type": "x"}') == {"type": "x"}
        assert manager.decode("[" * 200000) is None
        assert manager.decode('{"n": ' * 200000) is None

    def test_deeply_nested_frame_is_discarded(self, manager, factory, received):
        transport = _open(manager, factory)
        transport.deliver("[" * 200000)
        transport.deliver('{"type": "pong"}')
        assert received == [{"type": "pong"}]
        assert manager.is_connected is True

    def test_consumer_failure_does_not_break_receive(self, loop, factory):
        from campaignpulse.connection import ConnectionManager

        calls = []

        def consumer(msg):
            calls.append(msg)
            if msg.get("boom"):
                raise ValueError("bad handler")

        mgr = ConnectionManager(loop, on_message=consumer, transport_factory=factory)
        transport = _open(mgr, factory)
        transport.deliver('{"type": "a", "boom": true}')
        transport.deliver('{"type": "b"}')
        assert [m["type"] for m in calls] == ["a", "b"]

    def test_frames_applied_in_delivery_order(self, manager, factory, received):
        transport = _open(manager, factory)
        for i in range(5):
            transport._on_message(json.dumps({"type": "n", "seq": i}))
        manager._loop.run_pending()
        assert [m["seq"] for m in received] == [0, 1, 2, 3, 4]


# ---------------------------------------------------------------------------
# send
# ---------------------------------------------------------------------------

class TestSend:
    def test_send_while_closed_is_dropped(self, manager, caplog):
        with caplog.at_level(logging.WARNING):
            assert manager.send({"type": "ping"}) is False
        assert "not connected" in caplog.text

    def test_send_while_connecting_is_dropped(self, manager, factory):
        manager.establish(URL)
        assert manager.send({"type": "ping"}) is False
        assert factory.latest.sent == []

    def test_send_when_open(self, manager, factory):
        transport = _open(manager, factory)
        assert manager.send({"type": "ping"}) is True
        assert json.loads(transport.sent[0]) == {"type": "ping"}

    def test_transport_send_failure_is_swallowed(self, manager, factory):
        transport = _open(manager, factory)
        transport.fail_send = True
        assert manager.send({"type": "ping"}) is False


# ---------------------------------------------------------------------------
# Reconnect policy
# ---------------------------------------------------------------------------

class TestReconnect:
    def test_close_schedules_one_retry_after_delay(self, manager, factory, loop):
        transport = _open(manager, factory)
        transport.drop()
        assert manager.state is ConnectionState.CLOSED
        assert manager.is_connected is False
        assert len(loop.pending_timers) == 1
        assert loop.pending_timers[0].when == 3.0

        loop.advance(2.9)
        assert len(factory.transports) == 1
        loop.advance(0.1)
        assert len(factory.transports) == 2
        assert manager.state is ConnectionState.CONNECTING

    def test_rapid_close_events_leave_one_pending_timer(self, manager, factory, loop):
        transport = _open(manager, factory)
        transport.drop()
        loop.advance(1.0)
        transport.drop()
        loop.advance(1.0)
        transport.error()
        assert len(loop.pending_timers) == 1
        assert manager.reconnect_pending is True

    def test_repeated_scheduling_is_idempotent(self, manager, factory, loop):
        _open(manager, factory).drop()
        manager._schedule_reconnect()
        manager._schedule_reconnect()
        assert len(loop.pending_timers) == 1

    def test_error_then_close_counts_once(self, manager, factory, loop):
        transport = _open(manager, factory)
        transport.error()
        assert transport.closed is True
        transport.drop()
        assert len(loop.pending_timers) == 1
        loop.advance(3.0)
        assert len(factory.transports) == 2

    def test_keeps_retrying_until_open(self, manager, factory, loop):
        manager.establish(URL)
        for attempt in range(1, 4):
            factory.latest.drop()
            assert manager.consecutive_failures == attempt
            loop.advance(3.0)
        factory.latest.open()
        assert manager.is_connected is True
        assert manager.consecutive_failures == 0

    def test_drop_after_open_is_not_a_failed_attempt(self, manager, factory):
        _open(manager, factory).drop()
        assert manager.consecutive_failures == 0


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------

class TestTeardown:
    def test_closes_open_transport(self, manager, factory):
        transport = _open(manager, factory)
        manager.teardown()
        assert transport.closed is True
        assert manager.is_connected is False
        assert manager.state is ConnectionState.CLOSED

    def test_cancels_pending_reconnect(self, manager, factory, loop, received):
        transport = _open(manager, factory)
        transport.drop()
        assert manager.reconnect_pending

        manager.teardown()
        assert loop.pending_timers == []
        loop.advance(10.0)
        assert len(factory.transports) == 1
        assert manager.is_connected is False

        # nothing a dead transport says reaches the consumer any more
        transport.open()
        transport.deliver('{"type": "notification", "notification": {}}')
        assert received == []
        assert manager.is_connected is False

    def test_in_flight_timer_is_disarmed(self, manager, factory, loop):
        _open(manager, factory).drop()
        timer = loop.pending_timers[0]
        manager.teardown()
        # the timer already fired before cancel could stop it
        timer.fn(*timer.args)
        assert len(factory.transports) == 1
        assert manager.state is ConnectionState.CLOSED

    def test_teardown_twice(self, manager, factory):
        _open(manager, factory)
        manager.teardown()
        manager.teardown()
        assert manager.torn_down is True

    def test_state_listener_sees_transitions(self, loop, factory):
        from campaignpulse.connection import ConnectionManager

        states = []
        mgr = ConnectionManager(loop, transport_factory=factory, on_state_change=states.append)
        _open(mgr, factory).drop()
        mgr.teardown()
        assert states == [ConnectionState.CONNECTING, ConnectionState.OPEN, ConnectionState.CLOSED]


class TestSingleTransport:
    def test_error_without_close_closes_old_socket(self, manager, factory, loop):
        old = _open(manager, factory)
        old.error(RuntimeError("callback blew up"))
        assert old.closed is True
        loop.advance(3.0)
        live = [t for t in factory.transports if not t.closed]
        assert live == [factory.latest]
        assert factory.latest is not old
