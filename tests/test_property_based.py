"""Property-based tests using hypothesis."""

from hypothesis import given, strategies as st

from ircbot.core.constants import CTCP_TAGS
from ircbot.irc.ctcp import Extended, low_level_dequote, low_level_quote, pack_message, unpack_message
from ircbot.irc.message import parse_message, serialize_message
from ircbot.irc.queue import PriorityQueue
from ircbot.irc.throttle import PenaltyBudget
from ircbot.plugin.acl import Acl

_text = st.text(alphabet=st.characters(exclude_categories=("Cs",)))
_extended = st.builds(Extended, st.sampled_from(sorted(CTCP_TAGS)), st.none() | _text)
_middle = st.text(alphabet=st.characters(min_codepoint=33, max_codepoint=126, exclude_characters=":"), min_size=1)
_trailing = st.text(alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="\x00\r\n"))
_acl_token = st.builds(
    lambda sign, res, priv: f"{sign}{res}.{priv}",
    st.sampled_from(["", "+", "-"]),
    st.sampled_from(["*", "foo", "bar"]),
    st.sampled_from(["*", "read", "write"]),
)


class TestPropertyBased:
    """Property-based tests for invariants."""

    @given(_text)
    def test_low_level_quoting_round_trips(self, text):
        """Property: low-level dequote reverses quote and the result has no line breaks."""
        quoted = low_level_quote(text)
        assert "\r" not in quoted and "\n" not in quoted and "\x00" not in quoted
        assert low_level_dequote(quoted) == text

    @given(st.lists(_extended, max_size=4), st.lists(_text, max_size=4))
    def test_ctcp_pack_unpack(self, extended, plain):
        """Property: unpacking yields the extended parts, then all plain text merged."""
        # Arrange
        expected = list(extended)
        merged = "".join(plain)
        if merged:
            expected.append(merged)

        # Act
        result = unpack_message(pack_message(extended + plain))

        # Assert
        assert result == expected

    @given(st.sampled_from(["PRIVMSG", "NOTICE", "JOIN", "001"]), st.lists(_middle, max_size=5), _trailing)
    def test_serialized_line_parses_back(self, command, middle, trailing):
        """Property: parse_message(serialize_message(...)) keeps command and params."""
        msg = parse_message(serialize_message(command, [*middle, trailing]))

        assert msg is not None
        assert msg.command == command
        assert msg.params == [*middle, trailing]

    @given(st.lists(st.tuples(st.integers(0, 30), st.integers()), max_size=50))
    def test_queue_orders_by_priority_then_insertion(self, items):
        """Property: extraction order is (priority, insertion order)."""
        # Arrange
        queue: PriorityQueue[tuple[int, int]] = PriorityQueue()
        for index, (priority, _) in enumerate(items):
            queue.insert((priority, index), priority)

        # Act
        extracted = [queue.extract() for _ in items]

        # Assert
        assert extracted == sorted((p, i) for i, (p, _) in enumerate(items))
        assert queue.extract() is None

    @given(st.integers(1, 20), st.lists(st.integers(0, 5), max_size=30))
    def test_budget_never_exceeds_limit(self, limit, operations):
        """Property: refills never lift the budget above its limit."""
        budget = PenaltyBudget(limit)
        for amount in operations:
            budget.consume(amount)
            budget.refill(amount * 2)
            assert budget.available <= limit

    @given(st.lists(_acl_token, max_size=8))
    def test_normalized_acl_is_stable(self, tokens):
        """Property: a normalized ACL re-parses to the same string and the same answers."""
        acl = Acl(" ".join(tokens))
        again = Acl(str(acl))

        assert str(again) == str(acl)
        for resource in ("foo", "bar", "baz"):
            for privilege in ("read", "write", "other"):
                assert again.is_allowed(resource, privilege) == acl.is_allowed(resource, privilege)
