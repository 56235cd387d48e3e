"""Tests for the select() reactor (ircbot/net/reactor.py)."""

from __future__ import annotations

import socket
from unittest.mock import patch

import pytest

from ircbot.core.errors import SocketError
from ircbot.net.reactor import Event, Reactor
from tests.mocks import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reactor(clock):
    return Reactor(clock=clock, sleep=clock.sleep)


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


class TestTimeouts:
    def test_due_timeout_fires_once(self, reactor, clock):
        fired = []
        reactor.add_timeout(5, lambda: fired.append(clock.now))

        clock.advance(5)
        reactor.run_once()
        reactor.run_once()

        assert len(fired) == 1
        assert reactor.pending_timeouts() == 0

    def test_not_yet_due_timeout_does_not_fire(self, reactor, clock):
        fired = []
        reactor.add_timeout(5, lambda: fired.append(1))
        reactor.add_timeout(100, lambda: None)

        clock.advance(4)
        reactor._fire_timeouts()

        assert fired == []

    def test_sleeps_until_next_timeout_without_sockets(self, reactor, clock):
        reactor.add_timeout(3, lambda: None)

        reactor.run_once()

        assert clock.sleeps == [3]

    def test_removed_timeout_does_not_fire(self, reactor, clock):
        fired = []
        handle = reactor.add_timeout(1, lambda: fired.append(1))
        reactor.remove_timeout(handle)

        clock.advance(2)
        reactor.run_once()

        assert fired == []

    def test_remove_unknown_handle_is_noop(self, reactor):
        reactor.remove_timeout(None)
        reactor.remove_timeout(12345)

    def test_timeout_cancelled_by_earlier_callback_does_not_fire(self, reactor, clock):
        fired = []
        handles = {}
        reactor.add_timeout(1, lambda: reactor.remove_timeout(handles["second"]))
        handles["second"] = reactor.add_timeout(1, lambda: fired.append("second"))

        clock.advance(1)
        reactor._fire_timeouts()

        assert fired == []

    def test_timeout_added_by_callback_waits_for_next_pass(self, reactor, clock):
        fired = []
        reactor.add_timeout(1, lambda: reactor.add_timeout(0, lambda: fired.append("nested")))

        clock.advance(1)
        reactor._fire_timeouts()
        assert fired == []

        reactor._fire_timeouts()
        assert fired == ["nested"]

    def test_handles_are_unique(self, reactor):
        handles = {reactor.add_timeout(1, lambda: None) for _ in range(10)}
        assert len(handles) == 10


class TestRunLoop:
    def test_stop_from_callback_ends_run(self, reactor):
        reactor.add_timeout(0, reactor.stop)
        reactor.add_timeout(60, lambda: None)

        reactor.run()

        assert not reactor.running

    def test_nothing_to_wait_on_stops_loop(self, reactor):
        reactor.run()
        assert not reactor.running


class TestSockets:
    def test_readable_socket_gets_read_event(self, reactor, pair):
        a, b = pair
        events = []
        reactor.add_reader(a, events.append)
        reactor.add_timeout(1, lambda: None)
        b.send(b"x")

        reactor.run_once()

        assert events == [Event.READ]

    def test_write_interest_reports_writable(self, reactor, pair):
        a, _ = pair
        events = []
        reactor.add_reader(a, events.append)
        reactor.set_write_interest(a, True)

        reactor.run_once()

        assert Event.WRITE in events

    def test_add_reader_twice_keeps_single_registration(self, reactor, pair):
        a, b = pair
        first, second = [], []
        reactor.add_reader(a, first.append)
        reactor.add_reader(a, second.append)
        reactor.add_timeout(1, lambda: None)
        b.send(b"x")

        reactor.run_once()

        assert first == []
        assert second == [Event.READ]

    def test_remove_socket_is_idempotent(self, reactor, pair):
        a, _ = pair
        reactor.add_reader(a, lambda e: None)
        reactor.remove_socket(a)
        reactor.remove_socket(a)
        assert not reactor.has_socket(a)

    def test_socket_removed_by_earlier_callback_is_skipped(self, reactor, pair):
        a, b = pair
        c, d = socket.socketpair()
        try:
            events = []
            reactor.add_reader(a, lambda e: reactor.remove_socket(c))
            reactor.add_reader(c, events.append)
            reactor.add_timeout(1, lambda: None)
            b.send(b"x")
            d.send(b"y")

            reactor.run_once()

            assert events == []
        finally:
            c.close()
            d.close()


class TestSelectErrors:
    def test_select_error_is_fatal_by_default(self, reactor, pair):
        a, _ = pair
        reactor.add_reader(a, lambda e: None)

        with patch("ircbot.net.reactor.select.select", side_effect=OSError("boom")):
            with pytest.raises(SocketError) as exc_info:
                reactor.run_once()

        assert exc_info.value.code == "select_failed"

    def test_select_error_can_be_ignored(self, clock, pair):
        a, _ = pair
        reactor = Reactor(clock=clock, sleep=clock.sleep, select_errors_fatal=False)
        reactor.add_reader(a, lambda e: None)

        with patch("ircbot.net.reactor.select.select", side_effect=OSError("boom")):
            reactor.run_once()

        assert reactor.running
