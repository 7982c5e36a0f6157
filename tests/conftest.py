"""
Shared pytest fixtures for ashval tests.

Provides scripted generation providers so that no model API is called.
"""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from ashval.api import Workspace
from ashval.config import StoreConfig, WriterConfig


class ScriptedProvider:
    """
    Generation provider that replays fixed chunks.

    Records every call so tests can check what would have been sent.
    ``fail_after`` raises a transport error after that many chunks.
    """

    def __init__(self, chunks=(), *, response: str = "", fail_after: Optional[int] = None,
                 delay: float = 0.0):
        self.chunks = list(chunks)
        self.response = response
        self.fail_after = fail_after
        self.delay = delay
        self.stream_calls = []
        self.generate_calls = []
        self.yielded = 0
        self.closed = False

    async def stream(self, system_instruction, prompt, history, decision):
        self.stream_calls.append({
            "system_instruction": system_instruction,
            "prompt": prompt,
            "history": list(history),
            "decision": decision,
        })
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ConnectionError("connection reset")
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.yielded += 1
                yield chunk
        finally:
            self.closed = True

    async def generate(self, system_instruction, prompt, decision):
        self.generate_calls.append({
            "system_instruction": system_instruction,
            "prompt": prompt,
            "decision": decision,
        })
        return self.response


async def chunk_source(chunks):
    """Async generator over a fixed list of chunks."""
    for chunk in chunks:
        yield chunk


@pytest.fixture
def scripted_provider():
    return ScriptedProvider(["Hello", ", ", "world"])


@pytest.fixture
def workspace(tmp_path: Path):
    """A workspace in a temporary store with default settings."""
    ws = Workspace(tmp_path / "store")
    yield ws
    ws.close()


@pytest.fixture
def make_workspace(tmp_path: Path):
    """Factory for workspaces with custom writer settings."""
    opened = []

    def factory(**writer_options) -> Workspace:
        config = StoreConfig(
            path=tmp_path / f"store{len(opened)}",
            writer=WriterConfig(**writer_options),
        )
        ws = Workspace(config=config)
        opened.append(ws)
        return ws

    yield factory
    for ws in opened:
        ws.close()
