"""
ashval

Notes, tasks and worldbuilding with AI drafting. The core keeps a
bidirectional link graph over free-form notes, assembles bounded prompts
from notes, lore and structured cues, consumes streamed model output, and
splits settled responses into structured data and prose.

Quick Start:
    from ashval import Workspace

    with Workspace() as ws:  # uses ~/.ashval/
        ws.add_note("Harbor", "Meet [[Kara|Character]] at [[The Docks]].")
        prompt = ws.assemble("Rewrite the harbor scene", "scene-rewrite")

CLI Usage:
    ashval note add "Harbor" "Meet [[Kara]] at [[The Docks]]."
    ashval note show Harbor
    ashval prompt "Rewrite the harbor scene" --mode scene-rewrite

Environment Variables:
    ASHVAL_STORE_PATH   - Override default store location
    ASHVAL_API_KEY      - API key used in 'stored' key mode
    ASHVAL_VERBOSE      - Set to 1 for debug logging
"""

from .api import DraftResult, DraftSession, Workspace
from .context import ContextBudget, assemble_prompt
from .notation import parse_input_cues, parse_lore_notations, parse_note_links
from .resolver import resolve_response
from .routing import CredentialRequest, KeyRouter
from .stream import STREAM_ERROR_MARKER, StreamConsumer, StreamState
from .types import ApiKeyMode, LoreEntry, LoreType, Note, NoteLink, Project

__version__ = "0.1.0"
__all__ = [
    "Workspace",
    "DraftSession",
    "DraftResult",
    "ContextBudget",
    "assemble_prompt",
    "parse_note_links",
    "parse_lore_notations",
    "parse_input_cues",
    "resolve_response",
    "KeyRouter",
    "CredentialRequest",
    "StreamConsumer",
    "StreamState",
    "STREAM_ERROR_MARKER",
    "ApiKeyMode",
    "Note",
    "NoteLink",
    "LoreEntry",
    "LoreType",
    "Project",
]
