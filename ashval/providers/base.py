"""
Collaborator protocols.

Uses Protocol for structural subtyping: a provider only needs the right
methods, not a common base class. The transport behind a provider
(HTTP, SDK, a local model) is the provider's business.
"""

from typing import AsyncIterator, Protocol, Sequence, Union, runtime_checkable

from ..resolver import MarkdownRenderer
from ..stream import StreamChunk
from ..types import ChatTurn, KeyRoutingDecision


@runtime_checkable
class GenerationProvider(Protocol):
    """
    Produces model output for a prompt.

    ``stream`` yields chunks in order: plain strings, strings carrying the
    in-band error marker, or already-tagged StreamChunk values.
    ``generate`` returns the whole response at once.
    """

    def stream(
        self,
        system_instruction: str,
        prompt: str,
        history: Sequence[ChatTurn],
        decision: KeyRoutingDecision,
    ) -> AsyncIterator[Union[str, StreamChunk]]:
        ...

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        decision: KeyRoutingDecision,
    ) -> str:
        ...


__all__ = ["GenerationProvider", "MarkdownRenderer", "StreamChunk"]
