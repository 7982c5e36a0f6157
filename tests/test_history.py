"""
Tests for bounded chat history.
"""

import pytest

from ashval.history import ChatHistory, trim_turns
from ashval.types import ChatTurn, Role


def _pairs(n):
    turns = []
    for i in range(n):
        turns.append(ChatTurn(Role.USER, f"q{i}"))
        turns.append(ChatTurn(Role.MODEL, f"a{i}"))
    return turns


class TestTrimTurns:

    def test_five_pairs_bounded_to_two(self):
        trimmed = trim_turns(_pairs(5), 2)
        assert [t.text for t in trimmed] == ["q3", "a3", "q4", "a4"]

    def test_under_limit_unchanged(self):
        assert trim_turns(_pairs(2), 5) == _pairs(2)

    def test_pending_user_turn_evicts_oldest_pair(self):
        turns = _pairs(2) + [ChatTurn(Role.USER, "new")]
        trimmed = trim_turns(turns, 2)
        assert [t.text for t in trimmed] == ["q1", "a1", "new"]

    def test_does_not_mutate_input(self):
        turns = _pairs(3)
        trim_turns(turns, 1)
        assert len(turns) == 6


class TestChatHistory:

    def test_append_exchange_bounded(self):
        history = ChatHistory(max_exchanges=2)
        for i in range(5):
            history.append_exchange(f"q{i}", f"a{i}")
        assert len(history) == 4
        assert [t.role for t in history] == [Role.USER, Role.MODEL] * 2
        assert history.turns[0].text == "q3"

    def test_with_pending_does_not_store(self):
        history = ChatHistory(max_exchanges=1)
        history.append_exchange("q0", "a0")
        pending = history.with_pending("q1")
        assert pending == [ChatTurn(Role.USER, "q1")]
        assert len(history) == 2

    def test_initial_turns_trimmed(self):
        history = ChatHistory(max_exchanges=1, turns=_pairs(3))
        assert [t.text for t in history] == ["q2", "a2"]

    def test_clear(self):
        history = ChatHistory(turns=_pairs(1))
        history.clear()
        assert len(history) == 0

    def test_turns_is_a_copy(self):
        history = ChatHistory(turns=_pairs(1))
        history.turns.append(ChatTurn(Role.USER, "sneaky"))
        assert len(history) == 2

    def test_rejects_zero_exchanges(self):
        with pytest.raises(ValueError):
            ChatHistory(max_exchanges=0)
