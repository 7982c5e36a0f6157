"""
Forward links and backlinks between notes.

Forward links are materialized on a note at save time. Backlinks are the
reverse relation: the notes whose forward links name a given title,
compared case-insensitively. ``backlinks()`` answers by scanning a
corpus; the document store answers the same question from its
``note_links`` index.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .notation import parse_note_links
from .types import Note, NoteLink, title_key, utc_now


def refresh_links(note: Note) -> Note:
    """Re-derive ``note.links`` from its content and bump ``updated_at``."""
    note.links = parse_note_links(note.content)
    note.updated_at = utc_now()
    return note


def forward_links(note: Note) -> list[NoteLink]:
    """The links stored on the note; never re-parsed on read."""
    return list(note.links)


def backlinks(notes: Iterable[Note], note: Note) -> list[Note]:
    """Notes other than ``note`` that link to its title."""
    key = title_key(note.title)
    return [
        other for other in notes
        if other.id != note.id
        and any(title_key(link.target_title) == key for link in other.links)
    ]


def resolve_link(link: NoteLink, notes: Iterable[Note]) -> Optional[Note]:
    """
    Find the note a link points at, or None if no title matches.

    An unresolved link is shown disabled. Resolution never creates a note.
    """
    key = title_key(link.target_title)
    for note in notes:
        if title_key(note.title) == key:
            return note
    return None


@dataclass(frozen=True)
class ResolvedLink:
    link: NoteLink
    note: Optional[Note]

    @property
    def resolved(self) -> bool:
        return self.note is not None


@dataclass(frozen=True)
class LinkView:
    """Everything shown in a note's link panel, computed once per open."""
    note: Note
    forward: list[ResolvedLink]
    backlinks: list[Note]


def link_view(
    note: Note,
    notes: list[Note],
    referrers: Optional[list[Note]] = None,
) -> LinkView:
    """
    Resolve forward links and collect backlinks for one opened note.

    ``referrers`` may come from an index; otherwise the corpus is scanned.
    """
    if referrers is None:
        referrers = backlinks(notes, note)
    return LinkView(
        note=note,
        forward=[ResolvedLink(link, resolve_link(link, notes)) for link in note.links],
        backlinks=referrers,
    )
