"""Tests for the IRC client (ircbot/irc/client.py)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ircbot.core.constants import (
    HOOK_CONNECTED,
    HOOK_END_OF_WHOIS,
    HOOK_NICKNAME_IN_USE,
    HOOK_NO_SUCH_CHANNEL,
    HOOK_TOO_MANY_CHANNELS,
    HOOK_WHOIS_ACCOUNT,
)
from ircbot.core.errors import ConfigurationError, InvalidStateError
from ircbot.irc.client import Client, ClientState, ReplyMode
from ircbot.irc.queue import PRIORITY_HIGH
from ircbot.net.reactor import Reactor
from tests.mocks import FakeClock, FakeSocket, connected_client, make_client, make_config, privmsg

# ---------------------------------------------------------------------------
# connect / registration
# ---------------------------------------------------------------------------


class TestConnect:
    def test_connect_uses_config(self):
        client, _, _, _ = make_client()

        client.connect()

        assert client.socket.connects == [("127.0.0.1", 6667)]
        assert client.state is ClientState.CONNECTING

    def test_registers_on_socket_connect(self):
        client, _, _, _ = make_client()
        client.connect()

        client.socket.complete_connect()

        assert client.state is ClientState.AUTHENTICATING
        assert client.socket.lines() == ["NICK :bot\r\n", "USER bot 0 * :bot\r\n"]

    def test_missing_parameters_raise_invalid_state(self):
        clock = FakeClock()
        reactor = Reactor(clock=clock, sleep=clock.sleep)
        client = Client(reactor, make_config(irc={}), socket_factory=FakeSocket)

        with pytest.raises(InvalidStateError):
            client.connect()

    def test_rejects_hosts_that_are_not_domain_shaped(self):
        client, _, _, _ = make_client()
        with pytest.raises(ConfigurationError) as exc_info:
            client.connect(host="not a host")
        assert exc_info.value.code == "invalid_host"

    def test_resolution_failure_is_configuration_error(self):
        client, _, _, _ = make_client()
        with patch("ircbot.irc.client.socket.gethostbyname", side_effect=OSError("nope")):
            with pytest.raises(ConfigurationError) as exc_info:
                client.connect(host="irc.example.org")
        assert exc_info.value.code == "resolve_failed"

    def test_domain_is_resolved(self):
        client, _, _, _ = make_client()
        with patch("ircbot.irc.client.socket.gethostbyname", return_value="10.0.0.1") as resolve:
            client.connect(host="irc.example.org", port=6697)
        resolve.assert_called_once_with("irc.example.org")
        assert client.socket.connects == [("10.0.0.1", 6697)]

    def test_welcome_confirms_nickname(self):
        client, _, _, _ = connected_client()

        client.handle_line(":irc.example.com 001 bot_ :Welcome")

        assert client.state is ClientState.CONNECTED
        assert client.nickname == "bot_"

    def test_nickname_in_use_retries_while_registering(self):
        client, _, _, manager = connected_client()

        client.handle_line(":irc.example.com 433 * bot :Nickname is already in use")

        assert client.nickname == "bot_"
        assert client.socket.lines() == ["NICK :bot_\r\n"]


# ---------------------------------------------------------------------------
# inbound dispatch
# ---------------------------------------------------------------------------


class TestInbound:
    def test_ping_answered_with_pong(self):
        client, _, _, _ = connected_client()

        client.socket.feed(b"PING :abc123\r\n")

        assert client.socket.sent == [b"PONG :abc123\r\n"]

    def test_pong_is_queued_at_high_priority(self):
        client, _, _, _ = make_client()
        client.connect()  # socket still connecting, nothing drains

        client.handle_line("PING :abc123")

        item = client.queue._queue.peek()
        assert item.data == b"PONG :abc123\r\n"
        assert item.priority == PRIORITY_HIGH

    def test_lines_split_across_reads(self):
        client, _, _, _ = connected_client()

        client.socket.feed(b"PING :a")
        assert client.socket.sent == []
        client.socket.feed(b"bc\r\nPING :def\r\n\r\n")

        assert client.socket.lines() == ["PONG :abc\r\n", "PONG :def\r\n"]

    def test_unparseable_line_is_dropped(self):
        client, _, _, _ = connected_client()
        client.socket.feed(b"!!garbage!!\r\nPING :ok\r\n")
        assert client.socket.lines() == ["PONG :ok\r\n"]

    def test_undecodable_bytes_are_replaced(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock()

        client.socket.feed(b":a!b@c PRIVMSG #chan :caf\xff\r\n")

        msg = manager.dispatch.call_args[0][0]
        assert msg.message == "caf\ufffd"

    def test_privmsg_forwarded_to_manager(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock()

        client.handle_line(":alice!al@example.org PRIVMSG #chan :hello there")

        msg = manager.dispatch.call_args[0][0]
        assert msg.nick == "alice"
        assert msg.ident == "al@example.org"
        assert msg.target == "#chan"
        assert msg.message == "hello there"
        assert msg.kind == "privmsg"

    def test_notice_forwarded_with_kind(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock()

        client.handle_line(":alice!al@example.org NOTICE bot :psst")

        assert manager.dispatch.call_args[0][0].kind == "notice"

    def test_plugin_error_does_not_escape(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock(side_effect=RuntimeError("plugin bug"))

        client.handle_line(":alice!al@example.org PRIVMSG #chan :boom")
        client.socket.feed(b"PING :still-alive\r\n")

        assert client.socket.lines() == ["PONG :still-alive\r\n"]

    def test_own_nick_change_is_tracked(self):
        client, _, _, _ = connected_client()
        client.handle_line(":bot!b@h NICK :newbot")
        assert client.nickname == "newbot"

    def test_other_nick_change_is_ignored(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h NICK :alicia")
        assert client.nickname == "bot"


class TestNumericHooks:
    @pytest.mark.parametrize(
        ("line", "hook", "data"),
        [
            (":s 376 bot :End of MOTD", HOOK_CONNECTED, None),
            (":s 422 bot :MOTD File is missing", HOOK_CONNECTED, None),
            (":s 318 bot alice :End of WHOIS", HOOK_END_OF_WHOIS, "alice"),
            (":s 330 bot alice acct :is logged in as", HOOK_WHOIS_ACCOUNT, ("alice", "acct")),
            (":s 403 bot #nope :No such channel", HOOK_NO_SUCH_CHANNEL, "#nope"),
            (":s 405 bot #many :Too many channels", HOOK_TOO_MANY_CHANNELS, "#many"),
            (":s 433 bot taken :Nickname in use", HOOK_NICKNAME_IN_USE, "taken"),
        ],
    )
    def test_numeric_triggers_hook(self, line, hook, data):
        client, _, _, manager = connected_client()
        manager.trigger_hook = MagicMock()

        client.handle_line(line)

        manager.trigger_hook.assert_called_once_with(hook, data)

    def test_unmapped_numeric_triggers_nothing(self):
        client, _, _, manager = connected_client()
        manager.trigger_hook = MagicMock()

        client.handle_line(":s 372 bot :- motd line")

        manager.trigger_hook.assert_not_called()


class TestCtcp:
    def test_version_reply(self):
        client, _, _, _ = connected_client()

        client.handle_line(":alice!a@h PRIVMSG bot :\x01VERSION\x01")

        (line,) = client.socket.lines()
        assert line.startswith("NOTICE alice :\x01VERSION ircbot ")
        assert line.endswith("\x01\r\n")

    def test_ping_echoes_data(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h PRIVMSG bot :\x01PING 1234 5678\x01")
        assert client.socket.lines() == ["NOTICE alice :\x01PING 1234 5678\x01\r\n"]

    def test_clientinfo_lists_supported_tags(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h PRIVMSG bot :\x01CLIENTINFO\x01")
        assert client.socket.lines() == ["NOTICE alice :\x01CLIENTINFO ACTION CLIENTINFO PING TIME VERSION\x01\r\n"]

    def test_time_reply(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h PRIVMSG bot :\x01TIME\x01")
        assert client.socket.lines()[0].startswith("NOTICE alice :\x01TIME ")

    def test_action_is_not_answered(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock()

        client.handle_line(":alice!a@h PRIVMSG #chan :\x01ACTION waves\x01")

        assert client.socket.sent == []
        manager.dispatch.assert_not_called()

    def test_other_tag_gets_errmsg(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h PRIVMSG bot :\x01FINGER\x01")
        assert client.socket.lines() == ["NOTICE alice :\x01ERRMSG FINGER :Unknown request\x01\r\n"]

    def test_ctcp_in_notice_is_never_answered(self):
        client, _, _, _ = connected_client()
        client.handle_line(":alice!a@h NOTICE bot :\x01VERSION other client\x01")
        assert client.socket.sent == []

    def test_plain_text_next_to_ctcp_is_dispatched(self):
        client, _, _, manager = connected_client()
        manager.dispatch = MagicMock()

        client.handle_line(":alice!a@h PRIVMSG bot :hi \x01PING 1\x01there")

        assert manager.dispatch.call_args[0][0].message == "hi there"
        assert client.socket.lines() == ["NOTICE alice :\x01PING 1\x01\r\n"]


# ---------------------------------------------------------------------------
# outbound helpers
# ---------------------------------------------------------------------------


class TestOutbound:
    def test_reply_in_channel_goes_to_channel(self):
        client, _, _, _ = connected_client()
        client.reply(privmsg("hi", target="#chan"), "hello")
        assert client.socket.lines() == ["PRIVMSG #chan :hello\r\n"]

    def test_reply_to_private_message_goes_to_sender(self):
        client, _, _, _ = connected_client()
        client.reply(privmsg("hi", target="bot"), "hello")
        assert client.socket.lines() == ["PRIVMSG alice :hello\r\n"]

    def test_notice_reply_always_goes_to_sender(self):
        client, _, _, _ = connected_client()
        client.reply(privmsg("hi", target="#chan"), "psst", ReplyMode.NOTICE)
        assert client.socket.lines() == ["NOTICE alice :psst\r\n"]

    def test_action_reply(self):
        client, _, _, _ = connected_client()
        client.reply(privmsg("hi", target="#chan"), "waves", ReplyMode.ACTION)
        assert client.socket.lines() == ["PRIVMSG #chan :\x01ACTION waves\x01\r\n"]

    def test_join_with_keys(self):
        client, _, _, _ = connected_client()
        client.join(["#a", "#b", "#c"], ["ka"])
        assert client.socket.lines() == ["JOIN #a,#b,#c :ka,,\r\n"]

    def test_join_without_keys(self):
        client, _, _, _ = connected_client()
        client.join("#a")
        assert client.socket.lines() == ["JOIN :#a\r\n"]

    def test_part_with_reason(self):
        client, _, _, _ = connected_client()
        client.part(["#a", "#b"], "bye")
        assert client.socket.lines() == ["PART #a,#b :bye\r\n"]

    def test_line_breaks_in_params_are_flattened(self):
        client, _, _, _ = connected_client()
        client.send_privmsg("#a", "one\r\nQUIT :injected")
        assert client.socket.lines() == ["PRIVMSG #a :one  QUIT :injected\r\n"]

    def test_send_while_connecting_waits_in_queue(self):
        client, _, _, _ = make_client()
        client.connect()

        client.send_privmsg("#a", "early")

        assert client.socket.sent == []
        assert len(client.queue) == 1


# ---------------------------------------------------------------------------
# flood control, lag and reconnect
# ---------------------------------------------------------------------------


class TestFloodControl:
    def test_burst_is_throttled_until_tick(self):
        client, reactor, clock, _ = connected_client(penalty_limit=10)
        # NICK and USER already spent two points
        for i in range(10):
            client.send_privmsg("#a", str(i))

        assert len(client.socket.sent) == 8
        assert len(client.queue) == 2

        clock.advance(1.0)
        reactor.run_once()

        assert len(client.socket.sent) == 9
        assert client.socket.lines()[-1] == "PRIVMSG #a :8\r\n"


class TestLagAndReconnect:
    def test_keepalive_ping_after_idle_interval(self):
        client, reactor, clock, _ = connected_client()

        clock.advance(60)
        reactor.run_once()

        assert "PING :127.0.0.1\r\n" in client.socket.lines()

    def test_lag_beyond_threshold_drops_connection(self):
        client, reactor, clock, _ = connected_client()

        clock.advance(300)
        reactor.run_once()

        assert client.state is ClientState.LAG_DETECTED
        assert client.socket.close_calls >= 1

    def test_received_data_resets_lag(self):
        client, reactor, clock, _ = connected_client()
        clock.advance(59)
        client.socket.feed(b":s NOTICE * :hi\r\n")

        clock.advance(1)
        reactor.run_once()

        assert "PING :127.0.0.1\r\n" not in client.socket.lines()

    def test_disconnect_schedules_reconnect(self):
        client, reactor, clock, _ = connected_client()
        client.queue.budget.consume(client.queue.budget.available)
        client.send_privmsg("#a", "pending")
        assert len(client.queue) == 1

        client.socket.drop()

        assert len(client.queue) == 0
        assert client.state is ClientState.IDLE
        clock.advance(10)
        reactor.run_once()
        assert client.socket.connects == [("127.0.0.1", 6667), ("127.0.0.1", 6667)]
        assert client.state is ClientState.CONNECTING

    def test_failed_reconnect_is_rescheduled(self):
        client, reactor, clock, _ = connected_client()
        client.socket.drop()

        with patch("ircbot.irc.client._resolve_host", side_effect=ConfigurationError("dns down")):
            clock.advance(10)
            reactor.run_once()

        assert client.state is ClientState.IDLE
        assert reactor.pending_timeouts() == 1

    def test_quit_is_written_even_when_budget_is_spent(self):
        client, _, _, _ = connected_client()
        client.queue.budget.consume(client.queue.budget.available)
        client.send_privmsg("#a", "waiting")

        client.quit("bye")
        client.disconnect()

        assert client.socket.lines() == ["QUIT :bye\r\n"]

    def test_no_reconnect_after_quit(self):
        client, reactor, _, _ = connected_client()

        client.quit("bye")
        client.socket.drop()

        assert client.socket.lines() == ["QUIT :bye\r\n"]
        assert reactor.pending_timeouts() == 0
        assert client.state is ClientState.IDLE
