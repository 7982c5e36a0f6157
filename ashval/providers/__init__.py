"""
Provider interfaces for ashval.

A generation provider turns a prompt into model output. Concrete
providers wrap a particular model API; the drafting pipeline only
depends on the protocol.
"""

from .base import GenerationProvider, MarkdownRenderer

__all__ = ["GenerationProvider", "MarkdownRenderer"]
