"""
Record store using SQLite.

The store is the source of truth for:
- Notes, with their materialized forward links and archived versions
- The inverted link index (target title -> referencing notes)
- Lore entries, unique on (title, type, project) compared case-insensitively
- Projects
- The learned vocabulary
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from .types import (
    LoreEntry, LoreType, Note, NoteLink, NoteVersion, Project, title_key, utc_now,
)

logger = logging.getLogger(__name__)

# Archived versions kept per note; older ones are dropped
MAX_NOTE_VERSIONS = 10


class DocumentStore:
    """
    SQLite-backed store for notes, lore, projects and vocabulary.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                tags_json TEXT NOT NULL DEFAULT '[]',
                links_json TEXT NOT NULL DEFAULT '[]',
                project_id TEXT,
                category TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notes_title
            ON notes(title COLLATE NOCASE)
        """)

        # Inverted link index: one row per distinct (note, target)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS note_links (
                source_id TEXT NOT NULL,
                target_key TEXT NOT NULL,
                PRIMARY KEY (source_id, target_key)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_note_links_target
            ON note_links(target_key)
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS note_versions (
                note_id TEXT NOT NULL,
                version INTEGER NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (note_id, version)
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS lore (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                title_key TEXT NOT NULL,
                type TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                tags_json TEXT NOT NULL DEFAULT '[]',
                project_id TEXT,
                project_key TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_lore_identity
            ON lore(title_key, type, project_key)
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                genre TEXT,
                description TEXT,
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vocabulary (
                word TEXT PRIMARY KEY,
                added_at TEXT NOT NULL
            )
        """)

        self._conn.commit()

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def upsert_note(self, note: Note) -> Note:
        """
        Insert or update a note and its link index rows.

        ``note.links`` must already be derived from the content. When the
        content of an existing note changes, the previous content is
        archived as a version. Preserves created_at on update.
        """
        existing = self.get_note(note.id)
        if existing is not None:
            note.created_at = existing.created_at
            if existing.content != note.content:
                self._archive_version(existing)

        self._conn.execute("""
            INSERT OR REPLACE INTO notes
            (id, title, content, tags_json, links_json, project_id, category,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            note.id, note.title, note.content,
            json.dumps(note.tags, ensure_ascii=False),
            json.dumps([l.target_title for l in note.links], ensure_ascii=False),
            note.project_id, note.category, note.created_at, note.updated_at,
        ))
        self._conn.execute("DELETE FROM note_links WHERE source_id = ?", (note.id,))
        self._conn.executemany(
            "INSERT OR IGNORE INTO note_links (source_id, target_key) VALUES (?, ?)",
            [(note.id, title_key(l.target_title)) for l in note.links],
        )
        self._conn.commit()
        return note

    def _archive_version(self, note: Note) -> None:
        row = self._conn.execute(
            "SELECT MAX(version) AS v FROM note_versions WHERE note_id = ?",
            (note.id,),
        ).fetchone()
        version = (row["v"] or 0) + 1
        self._conn.execute("""
            INSERT INTO note_versions (note_id, version, content, created_at)
            VALUES (?, ?, ?, ?)
        """, (note.id, version, note.content, note.updated_at))
        self._conn.execute("""
            DELETE FROM note_versions
            WHERE note_id = ? AND version <= ?
        """, (note.id, version - MAX_NOTE_VERSIONS))

    def get_note(self, id: str) -> Optional[Note]:
        row = self._conn.execute(
            "SELECT * FROM notes WHERE id = ?", (id,)
        ).fetchone()
        return self._row_to_note(row) if row else None

    def find_note_by_title(self, title: str) -> Optional[Note]:
        """First note whose title matches case-insensitively."""
        key = title_key(title)
        for note in self.list_notes():
            if title_key(note.title) == key:
                return note
        return None

    def list_notes(self, project_id: Optional[str] = None) -> list[Note]:
        """All notes, most recently updated first, optionally scoped to a project."""
        if project_id is None:
            cursor = self._conn.execute(
                "SELECT * FROM notes ORDER BY updated_at DESC, rowid DESC"
            )
        else:
            cursor = self._conn.execute(
                "SELECT * FROM notes WHERE project_id = ? "
                "ORDER BY updated_at DESC, rowid DESC",
                (project_id,),
            )
        return [self._row_to_note(row) for row in cursor]

    def delete_note(self, id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM notes WHERE id = ?", (id,))
        self._conn.execute("DELETE FROM note_links WHERE source_id = ?", (id,))
        self._conn.execute("DELETE FROM note_versions WHERE note_id = ?", (id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def get_backlinks(self, title: str, exclude_id: Optional[str] = None) -> list[Note]:
        """
        Notes whose forward links target ``title`` (case-insensitive).

        Uses the link index rather than scanning note content.
        """
        cursor = self._conn.execute("""
            SELECT n.* FROM notes n
            JOIN note_links l ON l.source_id = n.id
            WHERE l.target_key = ?
            ORDER BY n.updated_at DESC, n.rowid DESC
        """, (title_key(title),))
        return [
            self._row_to_note(row) for row in cursor
            if row["id"] != exclude_id
        ]

    def list_versions(self, note_id: str) -> list[NoteVersion]:
        """Archived versions of a note, newest first."""
        cursor = self._conn.execute("""
            SELECT note_id, version, content, created_at FROM note_versions
            WHERE note_id = ?
            ORDER BY version DESC
        """, (note_id,))
        return [
            NoteVersion(
                note_id=row["note_id"],
                content=row["content"],
                created_at=row["created_at"],
                version=row["version"],
            )
            for row in cursor
        ]

    @staticmethod
    def _row_to_note(row: sqlite3.Row) -> Note:
        return Note(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            tags=json.loads(row["tags_json"]),
            links=[NoteLink(t) for t in json.loads(row["links_json"])],
            project_id=row["project_id"],
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # -------------------------------------------------------------------------
    # Lore
    # -------------------------------------------------------------------------

    def insert_lore(self, entry: LoreEntry) -> bool:
        """
        Insert a lore entry unless one with the same identity exists.

        Identity is (title, type, project) with the title compared
        case-insensitively. Returns True if the entry was inserted.
        """
        cursor = self._conn.execute("""
            INSERT OR IGNORE INTO lore
            (id, title, title_key, type, content, tags_json, project_id,
             project_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.id, entry.title, title_key(entry.title), entry.type.value,
            entry.content, json.dumps(entry.tags, ensure_ascii=False),
            entry.project_id, entry.project_id or "", entry.created_at,
        ))
        self._conn.commit()
        return cursor.rowcount > 0

    def find_lore(
        self,
        title: str,
        type: LoreType,
        project_id: Optional[str] = None,
    ) -> Optional[LoreEntry]:
        row = self._conn.execute("""
            SELECT * FROM lore
            WHERE title_key = ? AND type = ? AND project_key = ?
        """, (title_key(title), type.value, project_id or "")).fetchone()
        return self._row_to_lore(row) if row else None

    def get_lore(self, id: str) -> Optional[LoreEntry]:
        row = self._conn.execute("SELECT * FROM lore WHERE id = ?", (id,)).fetchone()
        return self._row_to_lore(row) if row else None

    def list_lore(self, project_id: Optional[str] = None) -> list[LoreEntry]:
        """Lore entries, newest first, optionally scoped to a project."""
        if project_id is None:
            cursor = self._conn.execute(
                "SELECT * FROM lore ORDER BY created_at DESC, rowid DESC"
            )
        else:
            cursor = self._conn.execute(
                "SELECT * FROM lore WHERE project_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (project_id,),
            )
        return [self._row_to_lore(row) for row in cursor]

    def delete_lore(self, id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM lore WHERE id = ?", (id,))
        self._conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_lore(row: sqlite3.Row) -> LoreEntry:
        return LoreEntry(
            id=row["id"],
            title=row["title"],
            type=LoreType.parse(row["type"]),
            content=row["content"],
            tags=json.loads(row["tags_json"]),
            project_id=row["project_id"],
            created_at=row["created_at"],
        )

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def upsert_project(self, project: Project) -> Project:
        self._conn.execute("""
            INSERT OR REPLACE INTO projects
            (id, name, genre, description, archived, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            project.id, project.name, project.genre, project.description,
            int(project.archived), project.created_at,
        ))
        self._conn.commit()
        return project

    def get_project(self, id: str) -> Optional[Project]:
        row = self._conn.execute(
            "SELECT * FROM projects WHERE id = ?", (id,)
        ).fetchone()
        return self._row_to_project(row) if row else None

    def list_projects(self, include_archived: bool = False) -> list[Project]:
        sql = "SELECT * FROM projects"
        if not include_archived:
            sql += " WHERE archived = 0"
        sql += " ORDER BY created_at DESC, rowid DESC"
        return [self._row_to_project(row) for row in self._conn.execute(sql)]

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            genre=row["genre"],
            description=row["description"],
            archived=bool(row["archived"]),
            created_at=row["created_at"],
        )

    # -------------------------------------------------------------------------
    # Vocabulary
    # -------------------------------------------------------------------------

    def add_words(self, words: Iterable[str]) -> int:
        """Add words to the vocabulary. Returns how many were new."""
        now = utc_now()
        cursor = self._conn.executemany(
            "INSERT OR IGNORE INTO vocabulary (word, added_at) VALUES (?, ?)",
            [(w, now) for w in words],
        )
        self._conn.commit()
        return cursor.rowcount

    def remove_word(self, word: str) -> bool:
        cursor = self._conn.execute("DELETE FROM vocabulary WHERE word = ?", (word,))
        self._conn.commit()
        return cursor.rowcount > 0

    def list_words(self) -> list[str]:
        cursor = self._conn.execute("SELECT word FROM vocabulary ORDER BY word")
        return [row["word"] for row in cursor]

    def has_word(self, word: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM vocabulary WHERE word = ?", (word,)
        ).fetchone()
        return row is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
