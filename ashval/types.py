"""
Data types for notes, lore and AI drafting.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps in ashval are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def new_id() -> str:
    """Generate a fresh record identifier."""
    return uuid.uuid4().hex


def title_key(title: str) -> str:
    """Case-insensitive comparison key for titles."""
    return title.strip().casefold()


class LoreType(str, Enum):
    """Kinds of worldbuilding entity."""
    CHARACTER = "Character"
    PLACE = "Place"
    ITEM = "Item"
    CONCEPT = "Concept"
    EVENT = "Event"
    OTHER = "Other"
    ARCANA_SYSTEM = "ArcanaSystem"

    @classmethod
    def parse(cls, value: Optional[str], default: "LoreType" = None) -> "LoreType":
        """Map a type token to a LoreType, falling back to ``default`` (Concept)."""
        if value is not None:
            token = value.strip()
            for member in cls:
                if member.value == token:
                    return member
        return default if default is not None else cls.CONCEPT


class ApiKeyMode(str, Enum):
    """How the credential for a generation request is obtained."""
    SERVER_DEFAULT = "server-default"
    STORED = "stored"
    PROMPT = "prompt"


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class NoteLink:
    """A forward link: the target title as written in the note."""
    target_title: str


@dataclass
class Note:
    """
    A free-form note.

    ``links`` is derived from ``content`` whenever the note is saved;
    callers never set it directly.
    """
    title: str
    content: str = ""
    id: str = field(default_factory=new_id)
    tags: list[str] = field(default_factory=list)
    links: list[NoteLink] = field(default_factory=list)
    project_id: Optional[str] = None
    category: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass(frozen=True)
class NoteVersion:
    """An archived copy of a note's content."""
    note_id: str
    content: str
    created_at: str
    version: int = 0


@dataclass
class LoreEntry:
    """A worldbuilding record (character, place, item, ...)."""
    title: str
    type: LoreType = LoreType.CONCEPT
    content: str = ""
    id: str = field(default_factory=new_id)
    tags: list[str] = field(default_factory=list)
    project_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)


@dataclass
class Project:
    """A writing project that scopes notes and lore."""
    name: str
    genre: Optional[str] = None
    description: Optional[str] = None
    id: str = field(default_factory=new_id)
    archived: bool = False
    created_at: str = field(default_factory=utc_now)


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    text: str


@dataclass(frozen=True)
class KeyRoutingDecision:
    """Resolved credential and model for one generation request.

    ``resolved_key`` is None in server-default mode: no client credential
    is sent and the server uses its own.
    """
    mode: ApiKeyMode
    model: str
    resolved_key: Optional[str] = None


@dataclass(frozen=True)
class PromptContext:
    """The context blocks that went into an assembled prompt."""
    parsed_cues: str = ""
    project_sample: str = ""
    selected_references: str = ""
