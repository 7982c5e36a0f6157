"""
Tests for the stream consumer state machine.
"""

import asyncio

import pytest

from ashval.errors import InStreamError, StreamCancelled, TransportFailure
from ashval.resolver import PROCESSING_PLACEHOLDER
from ashval.stream import (
    STREAM_ERROR_MARKER,
    StreamChunk,
    StreamConsumer,
    StreamState,
    error_markup,
    mark_error,
    tag_chunk,
)

from tests.conftest import ScriptedProvider, chunk_source


def _stream(provider):
    return provider.stream("system", "prompt", [], None)


class TestTagging:

    def test_marker_prefix_is_error(self):
        chunk = tag_chunk(STREAM_ERROR_MARKER + "<p>quota</p>")
        assert chunk.is_error
        assert chunk.text == "<p>quota</p>"

    def test_marker_elsewhere_is_content(self):
        chunk = tag_chunk("see [[STREAM_ERROR]] later")
        assert not chunk.is_error

    def test_tagged_chunks_pass_through(self):
        chunk = StreamChunk.error("x")
        assert tag_chunk(chunk) is chunk

    def test_mark_error_escapes(self):
        assert mark_error("<b>") == STREAM_ERROR_MARKER + '<p class="stream-error">&lt;b&gt;</p>'


class TestCompletion:

    @pytest.mark.asyncio
    async def test_accumulates_and_completes(self):
        consumer = StreamConsumer()
        outcome = await consumer.consume(chunk_source(["Hel", "lo"]))
        assert outcome.state is StreamState.COMPLETED
        assert outcome.completed
        assert outcome.text == "Hello"
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_full_rerender_after_each_chunk(self):
        updates = []
        consumer = StreamConsumer(renderer=str.upper, on_update=updates.append)
        await consumer.consume(chunk_source(["a", "b", "c"]))
        assert updates == [PROCESSING_PLACEHOLDER, "A", "AB", "ABC"]
        assert consumer.display == "ABC"

    @pytest.mark.asyncio
    async def test_empty_stream_completes_blank(self):
        consumer = StreamConsumer()
        outcome = await consumer.consume(chunk_source([]))
        assert outcome.completed
        assert outcome.text == ""
        assert outcome.display == PROCESSING_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_must_reset_between_runs(self):
        consumer = StreamConsumer()
        await consumer.consume(chunk_source(["x"]))
        with pytest.raises(RuntimeError):
            await consumer.consume(chunk_source(["y"]))
        consumer.reset()
        outcome = await consumer.consume(chunk_source(["y"]))
        assert outcome.text == "y"


class TestErrors:

    @pytest.mark.asyncio
    async def test_in_stream_error_replaces_display(self):
        provider = ScriptedProvider(["one ", "two ", mark_error("quota exceeded"), "three"])
        updates = []
        consumer = StreamConsumer(on_update=updates.append)
        outcome = await consumer.consume(_stream(provider))

        assert outcome.state is StreamState.ERRORED
        assert isinstance(outcome.error, InStreamError)
        assert outcome.display == error_markup("quota exceeded")
        assert updates[-1] == error_markup("quota exceeded")
        assert outcome.text == "one two "
        assert "three" not in outcome.display

    @pytest.mark.asyncio
    async def test_chunks_after_error_never_pulled(self):
        provider = ScriptedProvider([mark_error("bad"), "late", "later"])
        consumer = StreamConsumer()
        await consumer.consume(_stream(provider))
        assert provider.yielded == 1
        assert provider.closed
        assert consumer.chunks_seen == 1

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        provider = ScriptedProvider(["partial", "more"], fail_after=1)
        consumer = StreamConsumer()
        outcome = await consumer.consume(_stream(provider))
        assert outcome.state is StreamState.ERRORED
        assert isinstance(outcome.error, TransportFailure)
        assert "AI Error: connection reset" in outcome.display
        assert outcome.display.startswith('<p class="stream-error">')
        assert outcome.text == "partial"


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_between_chunks(self):
        provider = ScriptedProvider(["a", "b", "c", "d"])

        def stop_after_first(display):
            if display == "<pre>a</pre>":
                consumer.cancel()

        consumer = StreamConsumer(on_update=stop_after_first)
        outcome = await consumer.consume(_stream(provider))
        assert outcome.state is StreamState.ERRORED
        assert isinstance(outcome.error, StreamCancelled)
        assert outcome.text == "a"
        assert provider.yielded == 1
        assert provider.closed

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self):
        provider = ScriptedProvider(["a"] * 50, delay=0.01)
        consumer = StreamConsumer()
        task = asyncio.create_task(consumer.consume(_stream(provider)))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert consumer.state is StreamState.ERRORED
        assert isinstance(consumer.error, StreamCancelled)
        assert provider.closed
        assert provider.yielded < 50


class TestUpdateCallback:

    @pytest.mark.asyncio
    async def test_raising_callback_ends_errored(self):
        provider = ScriptedProvider(["a", "b", "c"])

        def broken(display):
            if display != PROCESSING_PLACEHOLDER:
                raise RuntimeError("ui gone")

        consumer = StreamConsumer(on_update=broken)
        with pytest.raises(RuntimeError, match="ui gone"):
            await consumer.consume(_stream(provider))
        assert consumer.state is StreamState.ERRORED
        assert provider.yielded == 1
        assert provider.closed
