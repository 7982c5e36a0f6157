"""
Workspace API: notes, lore, projects and AI drafting over one store.

This is the main entry point for using ashval as a library::

    with Workspace("~/.ashval") as ws:
        ws.add_note("Harbor", "Meet [[Kara|Character]] at [[The Docks]].")
        session = ws.session(provider, mode="scene-analysis")
        result = await session.submit("How does the harbor scene read?")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .context import AssembledPrompt, assemble_prompt, check_instruction
from .document_store import DocumentStore
from .errors import StreamFailure
from .history import ChatHistory
from .links import LinkView, link_view, refresh_links
from .modes import DEFAULT_MODE, OperationMode, get_mode
from .notation import parse_lore_notations
from .providers.base import GenerationProvider, MarkdownRenderer
from .resolver import ResolvedResponse, resolve_response, suggest_note_title
from .routing import KeyRouter, PromptHandler
from .stream import StreamConsumer, StreamState
from .subtasks import suggest_subtasks
from .types import (
    ChatTurn, LoreEntry, LoreType, Note, NoteLink, Project, Role,
)
from .vocabulary import Vocabulary, word_repetitions

logger = logging.getLogger(__name__)

AUTO_LORE_TAGS = ["ai-generated", "auto-created"]
AI_NOTE_CATEGORY = "ai-generated"


class Workspace:
    """
    A store of notes, lore, projects and vocabulary.

    Notes get their forward links re-derived on every save, and the
    store's link index is updated in the same write, so backlinks are
    always consistent with saved content.
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
    ) -> None:
        """
        Open or create a workspace.

        Args:
            store_path: Store directory. Uses ASHVAL_STORE_PATH or
                ~/.ashval if not given.
            config: Pre-loaded StoreConfig (skips config file discovery).
        """
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        from .logging_config import configure_ops_log
        self._store_path.mkdir(parents=True, exist_ok=True)
        self._ops_log_handler = configure_ops_log(self._store_path)

        self._store = DocumentStore(self._config.database_path)
        self.vocabulary = Vocabulary(self._store)

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def save_note(self, note: Note) -> Note:
        """Save a note, re-deriving its links from its content."""
        refresh_links(note)
        self._store.upsert_note(note)
        logger.info("Saved note %s (%s), %d links", note.id, note.title, len(note.links))
        return note

    def add_note(
        self,
        title: str,
        content: str = "",
        *,
        tags: Iterable[str] = (),
        project_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Note:
        if not title or not title.strip():
            raise ValueError("Note title is required")
        return self.save_note(Note(
            title=title.strip(),
            content=content,
            tags=list(tags),
            project_id=project_id,
            category=category,
        ))

    def get_note(self, id: str) -> Optional[Note]:
        return self._store.get_note(id)

    def find_note_by_title(self, title: str) -> Optional[Note]:
        return self._store.find_note_by_title(title)

    def list_notes(self, project_id: Optional[str] = None) -> list[Note]:
        return self._store.list_notes(project_id)

    def delete_note(self, id: str) -> bool:
        deleted = self._store.delete_note(id)
        if deleted:
            logger.info("Deleted note %s", id)
        return deleted

    def list_versions(self, id: str):
        return self._store.list_versions(id)

    def revert_note(self, id: str, version: Optional[int] = None) -> Note:
        """
        Restore an archived version (the newest if ``version`` is None).

        The current content is archived in turn, so a revert can be undone.

        Raises:
            KeyError: no such note or version
        """
        note = self._store.get_note(id)
        if note is None:
            raise KeyError(f"Note not found: {id}")
        versions = self._store.list_versions(id)
        if version is not None:
            versions = [v for v in versions if v.version == version]
        if not versions:
            raise KeyError(f"No archived version of note {id}")
        note.content = versions[0].content
        return self.save_note(note)

    # -------------------------------------------------------------------------
    # Links
    # -------------------------------------------------------------------------

    def forward_links(self, id: str) -> list[NoteLink]:
        note = self._require_note(id)
        return list(note.links)

    def backlinks(self, id: str) -> list[Note]:
        """Notes linking to this note's title, from the link index."""
        note = self._require_note(id)
        return self._store.get_backlinks(note.title, exclude_id=note.id)

    def link_view(self, id: str) -> LinkView:
        """Forward links (resolved or not) and backlinks for an opened note."""
        note = self._require_note(id)
        return link_view(
            note,
            self._store.list_notes(),
            referrers=self._store.get_backlinks(note.title, exclude_id=note.id),
        )

    def _require_note(self, id: str) -> Note:
        note = self._store.get_note(id)
        if note is None:
            raise KeyError(f"Note not found: {id}")
        return note

    # -------------------------------------------------------------------------
    # Lore
    # -------------------------------------------------------------------------

    def add_lore(
        self,
        title: str,
        type: LoreType | str = LoreType.CONCEPT,
        content: str = "",
        *,
        tags: Iterable[str] = (),
        project_id: Optional[str] = None,
    ) -> LoreEntry:
        """
        Add a lore entry, or return the existing one with the same identity.

        Identity is (title, type, project), title compared case-insensitively.
        """
        if not title or not title.strip():
            raise ValueError("Lore title is required")
        lore_type = type if isinstance(type, LoreType) else LoreType.parse(type)
        entry = LoreEntry(
            title=title.strip(),
            type=lore_type,
            content=content,
            tags=list(tags),
            project_id=project_id,
        )
        if not self._store.insert_lore(entry):
            return self._store.find_lore(entry.title, lore_type, project_id)
        logger.info("Added lore %s (%s)", entry.title, lore_type.value)
        return entry

    def get_lore(self, id: str) -> Optional[LoreEntry]:
        return self._store.get_lore(id)

    def list_lore(self, project_id: Optional[str] = None) -> list[LoreEntry]:
        return self._store.list_lore(project_id)

    def delete_lore(self, id: str) -> bool:
        return self._store.delete_lore(id)

    def auto_create_lore(self, text: str, project_id: Optional[str] = None) -> list[LoreEntry]:
        """
        Create lore entries for notations in ``text`` that have none yet.

        This is the only path that creates entities from notation.
        Running it twice on the same text creates nothing the second time.
        """
        created = []
        for notation in parse_lore_notations(text):
            entry = LoreEntry(
                title=notation.title,
                type=notation.type,
                content=f"สร้างอัตโนมัติจาก AI Writer - [[{notation.title}|{notation.type.value}]]",
                tags=list(AUTO_LORE_TAGS),
                project_id=project_id,
            )
            if self._store.insert_lore(entry):
                created.append(entry)
        if created:
            logger.info("Auto-created %d lore entries", len(created))
        return created

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def add_project(
        self,
        name: str,
        genre: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        if not name or not name.strip():
            raise ValueError("Project name is required")
        return self._store.upsert_project(
            Project(name=name.strip(), genre=genre, description=description)
        )

    def get_project(self, id: str) -> Optional[Project]:
        return self._store.get_project(id)

    def list_projects(self, include_archived: bool = False) -> list[Project]:
        return self._store.list_projects(include_archived)

    def archive_project(self, id: str) -> Project:
        project = self._store.get_project(id)
        if project is None:
            raise KeyError(f"Project not found: {id}")
        project.archived = True
        return self._store.upsert_project(project)

    # -------------------------------------------------------------------------
    # AI
    # -------------------------------------------------------------------------

    def router(self, prompt_handler: Optional[PromptHandler] = None) -> KeyRouter:
        """A key router configured from the writer settings."""
        writer = self._config.writer
        return KeyRouter(
            mode=writer.api_key_mode,
            stored_key=self._config.effective_api_key(),
            model=writer.model,
            prompt_handler=prompt_handler,
        )

    def session(
        self,
        provider: GenerationProvider,
        *,
        mode: str = DEFAULT_MODE,
        project_id: Optional[str] = None,
        prompt_handler: Optional[PromptHandler] = None,
        renderer: Optional[MarkdownRenderer] = None,
    ) -> "DraftSession":
        return DraftSession(
            self,
            provider,
            mode=mode,
            project_id=project_id,
            router=self.router(prompt_handler),
            renderer=renderer,
        )

    def assemble(
        self,
        instruction: str,
        mode: str | OperationMode = DEFAULT_MODE,
        *,
        project_id: Optional[str] = None,
        reference_ids: Iterable[str] = (),
        history: Optional[ChatHistory] = None,
        custom_instruction: Optional[str] = None,
    ) -> AssembledPrompt:
        """Build the prompt a request would send, against the stored corpus."""
        op = mode if isinstance(mode, OperationMode) else get_mode(mode)
        project = self._store.get_project(project_id) if project_id else None
        return assemble_prompt(
            instruction,
            op,
            notes=self._store.list_notes(),
            lore=self._store.list_lore(),
            project=project,
            reference_ids=reference_ids,
            history=history,
            budget=self._config.budget,
            custom_instruction=custom_instruction or self._config.writer.custom_instruction,
            max_exchanges=self._config.writer.max_exchanges,
        )

    async def suggest_subtasks(
        self,
        task_title: str,
        provider: GenerationProvider,
        category: Optional[str] = None,
        prompt_handler: Optional[PromptHandler] = None,
    ) -> list[str]:
        return await suggest_subtasks(
            task_title, provider, self.router(prompt_handler), category,
        )

    def save_response_as_note(
        self,
        text: str,
        mode: str = "",
        project_id: Optional[str] = None,
    ) -> Note:
        """
        Store a settled response as a new note.

        Raises:
            ValueError: the response is blank
        """
        resolved = resolve_response(text)
        if resolved.is_placeholder:
            raise ValueError("No AI response to save")
        return self.save_note(Note(
            title=suggest_note_title(resolved, mode),
            content=text.strip(),
            tags=[mode] if mode else [],
            project_id=project_id,
            category=AI_NOTE_CATEGORY,
        ))

    def word_repetitions(self, text: str, threshold: Optional[int] = None) -> list[tuple[str, int]]:
        if threshold is None:
            threshold = self._config.writer.repetition_threshold
        return word_repetitions(text, threshold)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the store and detach the ops log."""
        if self._store is not None:
            self._store.close()
        if self._ops_log_handler is not None:
            logging.getLogger("ashval").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False


async def _open_stream(provider: GenerationProvider, prompt: AssembledPrompt, decision):
    """Open the provider stream lazily so that a failure to open is a transport failure."""
    source = provider.stream(
        prompt.system_instruction, prompt.prompt, prompt.history, decision,
    )
    try:
        async for chunk in source:
            yield chunk
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


@dataclass(frozen=True)
class DraftResult:
    """The end of one drafting request."""
    state: StreamState
    text: str
    display: str
    resolved: Optional[ResolvedResponse] = None
    error: Optional[StreamFailure] = None
    prompt: Optional[AssembledPrompt] = None
    created_lore: list[LoreEntry] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state is StreamState.COMPLETED


class DraftSession:
    """
    One AI writer conversation: a mode, its chat history, and at most
    one streaming request at a time.

    Pre-request problems (input too large, blank input, no usable key,
    cancelled key entry) raise. Problems during streaming come back in
    the DraftResult and leave history and vocabulary untouched.
    """

    def __init__(
        self,
        workspace: Workspace,
        provider: GenerationProvider,
        *,
        mode: str = DEFAULT_MODE,
        project_id: Optional[str] = None,
        router: Optional[KeyRouter] = None,
        renderer: Optional[MarkdownRenderer] = None,
        custom_instruction: Optional[str] = None,
    ):
        self.workspace = workspace
        self.provider = provider
        self.project_id = project_id
        self.router = router or workspace.router()
        self.renderer = renderer
        self.custom_instruction = custom_instruction
        self.history = ChatHistory(workspace.config.writer.max_exchanges)
        self._mode = get_mode(mode)
        self._consumer: Optional[StreamConsumer] = None
        self._lock = asyncio.Lock()
        # Bumped on every clear, so a response that finishes after a
        # clear does not write into the fresh history.
        self._epoch = 0

    @property
    def mode(self) -> OperationMode:
        return self._mode

    def set_mode(self, name: str) -> None:
        """Switch operation mode; history starts over."""
        self._mode = get_mode(name)
        self.clear()

    def clear(self) -> None:
        self.history.clear()
        self._epoch += 1

    def cancel(self) -> None:
        """Stop the running request before its next chunk."""
        if self._consumer is not None:
            self._consumer.cancel()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def submit(
        self,
        instruction: str,
        *,
        reference_ids: Iterable[str] = (),
        on_update: Optional[Callable[[str], None]] = None,
    ) -> DraftResult:
        """
        Run one drafting request end to end.

        Order: input checks, lore auto-creation (if enabled), prompt
        assembly, key routing, streaming, then the history and
        vocabulary commit on a completed non-blank response.

        Raises:
            InputTooLarge, EmptyInstruction, NoUsableCredential,
            CredentialAcquisitionCancelled: nothing was sent
            RuntimeError: a request is already running in this session
        """
        if self._lock.locked():
            raise RuntimeError("A request is already running in this session")
        async with self._lock:
            return await self._submit(instruction, list(reference_ids), on_update)

    async def _submit(self, instruction, reference_ids, on_update) -> DraftResult:
        ws = self.workspace
        check_instruction(instruction, self._mode, ws.config.budget)

        created_lore = []
        if ws.config.writer.auto_add_lore:
            created_lore = ws.auto_create_lore(instruction, self.project_id)

        prompt = ws.assemble(
            instruction,
            self._mode,
            project_id=self.project_id,
            reference_ids=reference_ids,
            history=self.history,
            custom_instruction=self.custom_instruction,
        )
        decision = await self.router.resolve()
        epoch = self._epoch

        logger.info("Drafting with %s (%s, key mode %s)",
                    self._mode.name, decision.model, decision.mode.value)
        self._consumer = StreamConsumer(self.renderer, on_update)
        try:
            outcome = await self._consumer.consume(
                _open_stream(self.provider, prompt, decision)
            )
        finally:
            self._consumer = None

        resolved = None
        if outcome.completed:
            resolved = resolve_response(outcome.text)
            if not resolved.is_placeholder:
                self._commit(prompt, outcome.text, epoch)

        return DraftResult(
            state=outcome.state,
            text=outcome.text,
            display=outcome.display,
            resolved=resolved,
            error=outcome.error,
            prompt=prompt,
            created_lore=created_lore,
        )

    def _commit(self, prompt: AssembledPrompt, text: str, epoch: int) -> None:
        self.workspace.vocabulary.learn_from(text)
        if epoch != self._epoch:
            logger.debug("History was cleared during the request; not recording it")
            return
        self.history = ChatHistory(
            self.history.max_exchanges,
            prompt.pending_history + [ChatTurn(Role.MODEL, text)],
        )
