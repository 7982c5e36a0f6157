"""
Bounded chat history for a drafting session.
"""

from typing import Iterator, Optional

from .types import ChatTurn, Role

DEFAULT_MAX_EXCHANGES = 5


def trim_turns(turns: list[ChatTurn], max_exchanges: int) -> list[ChatTurn]:
    """Drop the oldest user/model pairs until at most 2*max_exchanges turns remain."""
    limit = 2 * max_exchanges
    turns = list(turns)
    while len(turns) > limit:
        del turns[:2]
    return turns


class ChatHistory:
    """
    Ordered user/model turns, bounded to ``max_exchanges`` exchanges.

    Appending past the bound evicts the oldest pair first.
    """

    def __init__(self, max_exchanges: int = DEFAULT_MAX_EXCHANGES,
                 turns: Optional[list[ChatTurn]] = None):
        if max_exchanges < 1:
            raise ValueError("max_exchanges must be at least 1")
        self.max_exchanges = max_exchanges
        self._turns: list[ChatTurn] = trim_turns(turns or [], max_exchanges)

    @property
    def turns(self) -> list[ChatTurn]:
        return list(self._turns)

    def append(self, turn: ChatTurn) -> None:
        self._turns.append(turn)
        self._turns = trim_turns(self._turns, self.max_exchanges)

    def append_exchange(self, user_text: str, model_text: str) -> None:
        """Record a completed request/response pair."""
        self.append(ChatTurn(Role.USER, user_text))
        self.append(ChatTurn(Role.MODEL, model_text))

    def with_pending(self, user_text: str) -> list[ChatTurn]:
        """The turns that would be sent with a new user turn, without storing it."""
        return trim_turns(self._turns + [ChatTurn(Role.USER, user_text)],
                          self.max_exchanges)

    def clear(self) -> None:
        self._turns = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(list(self._turns))
