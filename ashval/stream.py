"""
Consume a streamed model response.

The provider's channel carries content and errors in-band: a chunk that
starts with ``STREAM_ERROR_MARKER`` holds a complete, display-ready
error payload instead of content. ``tag_chunk`` turns raw strings into
tagged ``StreamChunk`` values at the transport boundary so nothing past
it inspects string prefixes.

``StreamConsumer`` is a small state machine::

    IDLE -> STREAMING -> COMPLETED | ERRORED -> (reset) IDLE

Chunks are pulled one at a time. Cancellation is honored between chunks.
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Callable, Optional, Union

from .errors import InStreamError, StreamCancelled, StreamFailure, TransportFailure
from .resolver import MarkdownRenderer, render_live

logger = logging.getLogger(__name__)

STREAM_ERROR_MARKER = "[[STREAM_ERROR]]"


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"


class ChunkKind(str, Enum):
    CONTENT = "content"
    ERROR = "error"


@dataclass(frozen=True)
class StreamChunk:
    kind: ChunkKind
    text: str

    @classmethod
    def content(cls, text: str) -> "StreamChunk":
        return cls(ChunkKind.CONTENT, text)

    @classmethod
    def error(cls, payload: str) -> "StreamChunk":
        return cls(ChunkKind.ERROR, payload)

    @property
    def is_error(self) -> bool:
        return self.kind is ChunkKind.ERROR


RawChunk = Union[str, StreamChunk]


def tag_chunk(raw: RawChunk) -> StreamChunk:
    """Classify a raw chunk; the error marker is stripped from error payloads."""
    if isinstance(raw, StreamChunk):
        return raw
    if raw.startswith(STREAM_ERROR_MARKER):
        return StreamChunk.error(raw[len(STREAM_ERROR_MARKER):])
    return StreamChunk.content(raw)


def error_markup(message: str) -> str:
    """Inline error content, styled apart from normal output."""
    return f'<p class="stream-error">{html.escape(message)}</p>'


def mark_error(message: str) -> str:
    """Encode an error for an in-band channel; the inverse of ``tag_chunk``."""
    return STREAM_ERROR_MARKER + error_markup(message)


@dataclass(frozen=True)
class StreamOutcome:
    """How a stream ended: final state, settled text, what is on screen."""
    state: StreamState
    text: str
    display: str
    error: Optional[StreamFailure] = None

    @property
    def completed(self) -> bool:
        return self.state is StreamState.COMPLETED


class StreamConsumer:
    """
    Drive one streamed response to completion or error.

    Args:
        renderer: optional markdown renderer for the live display
        on_update: called with the full rendered display after every chunk
    """

    def __init__(
        self,
        renderer: Optional[MarkdownRenderer] = None,
        on_update: Optional[Callable[[str], None]] = None,
    ):
        self._renderer = renderer
        self._on_update = on_update
        self.reset()

    def reset(self) -> None:
        """Return to IDLE, discarding the previous run."""
        self.state = StreamState.IDLE
        self.text = ""
        self.display = ""
        self.error: Optional[StreamFailure] = None
        self.chunks_seen = 0
        self._cancel_requested = False

    def cancel(self) -> None:
        """Ask the running stream to stop before its next chunk."""
        self._cancel_requested = True

    @property
    def outcome(self) -> StreamOutcome:
        return StreamOutcome(self.state, self.text, self.display, self.error)

    def _show(self, display: str) -> None:
        self.display = display
        if self._on_update is not None:
            self._on_update(display)

    def _fail(self, failure: StreamFailure) -> None:
        self.error = failure
        self.state = StreamState.ERRORED
        self._show(failure.payload)

    async def consume(self, source: AsyncIterable[RawChunk]) -> StreamOutcome:
        """
        Pull chunks from ``source`` until it ends, errors, or is cancelled.

        Provider errors (in-band or raised) end in ERRORED and are
        returned, never raised. Task cancellation, or an exception from
        ``on_update``, also leaves the consumer ERRORED, then propagates.
        """
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Stream consumer is {self.state.value}; call reset() first")
        iterator: AsyncIterator[RawChunk] = aiter(source)
        self.state = StreamState.STREAMING
        try:
            self._show(render_live("", self._renderer))
            while True:
                if self._cancel_requested:
                    self._fail(StreamCancelled(error_markup("Generation stopped")))
                    break
                try:
                    raw = await anext(iterator)
                except StopAsyncIteration:
                    self.state = StreamState.COMPLETED
                    break
                except Exception as e:
                    logger.warning("Stream transport failed after %d chunks: %s",
                                   self.chunks_seen, e, exc_info=True)
                    self._fail(TransportFailure(error_markup(f"AI Error: {e}")))
                    break

                chunk = tag_chunk(raw)
                self.chunks_seen += 1
                if chunk.is_error:
                    logger.info("Stream reported an error at chunk %d", self.chunks_seen)
                    self._fail(InStreamError(chunk.text))
                    break
                self.text += chunk.text
                self._show(render_live(self.text, self._renderer))
        except asyncio.CancelledError:
            self._fail(StreamCancelled(error_markup("Generation cancelled")))
            raise
        finally:
            if self.state is StreamState.STREAMING:
                # on_update raised
                self.state = StreamState.ERRORED
            if self.state is not StreamState.COMPLETED:
                await _close(iterator)

        logger.debug("Stream ended %s after %d chunks (%d chars)",
                      self.state.value, self.chunks_seen, len(self.text))
        return self.outcome


async def _close(iterator) -> None:
    """Close an abandoned async generator so it stops producing."""
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug("Error closing stream source: %s", e)
