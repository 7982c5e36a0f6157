"""
Prompt assembly under length budgets.

A prompt is built from up to four blocks, always in this order and each
only when non-empty:

1. the mode-formatted instruction
2. structured cues parsed from the instruction
3. a sample of project notes and lore (context-grounded modes only)
4. explicitly selected references

Every source has its own cap, so one large source cannot crowd out the
others.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

from .errors import EmptyInstruction, InputTooLarge
from .history import DEFAULT_MAX_EXCHANGES, ChatHistory, trim_turns
from .modes import FormatterContext, OperationMode, system_instruction_for
from .notation import InputCues, format_cues_for_prompt, parse_input_cues
from .types import ChatTurn, LoreEntry, Note, Project, PromptContext, Role

logger = logging.getLogger(__name__)

PROJECT_HEADING = "## ข้อมูลโปรเจกต์ (Project Context):"
REFERENCES_HEADING = "## ข้อมูลอ้างอิงที่เลือก (Selected References):"


@dataclass(frozen=True)
class ContextBudget:
    """Per-source limits for prompt assembly."""
    max_input_chars: int = 20000
    max_context_notes: int = 5
    max_context_lore: int = 5
    note_chars: int = 300
    lore_chars: int = 200
    reference_chars: int = 400
    description_chars: int = 100


@dataclass(frozen=True)
class AssembledPrompt:
    """
    A prompt ready to send.

    ``history`` is what goes to the model before ``prompt``;
    ``pending_history`` is ``history`` plus the new user turn, trimmed,
    and becomes the session history once the response completes.
    """
    system_instruction: str
    prompt: str
    context: PromptContext
    cues: InputCues
    history: list[ChatTurn] = field(default_factory=list)
    pending_history: list[ChatTurn] = field(default_factory=list)


def check_instruction(instruction: str, mode: OperationMode, budget: ContextBudget) -> None:
    """
    Pre-request checks on the raw instruction.

    Raises:
        InputTooLarge: the instruction exceeds the hard ceiling
        EmptyInstruction: the instruction is blank and the mode needs one
    """
    if len(instruction) > budget.max_input_chars:
        raise InputTooLarge(len(instruction), budget.max_input_chars)
    if mode.requires_input and not instruction.strip():
        raise EmptyInstruction("Enter an instruction or some text for the AI")


def truncate(text: str, limit: int) -> str:
    """First ``limit`` characters followed by an ellipsis marker."""
    return f"{text[:limit]}..."


_WORD_RE = re.compile(r"[\w\u0e00-\u0e7f]+")


def _words(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.casefold()) if len(w) > 2}


def rank_by_relevance(items: Sequence, text: str, body) -> list:
    """
    Order items by relevance to ``text``, most relevant first.

    An item whose title occurs in the text ranks above any that merely
    shares words with it. Ties keep the input order, which callers supply
    newest first.
    """
    haystack = text.casefold()
    words = _words(text)

    def score(item):
        title = item.title.strip().casefold()
        mentioned = bool(title) and title in haystack
        overlap = len(words & _words(f"{item.title} {body(item)}"))
        return (mentioned, overlap)

    return sorted(items, key=score, reverse=True)


def select_scope(
    notes: Iterable[Note],
    lore: Iterable[LoreEntry],
    project: Optional[Project],
) -> tuple[Optional[Project], list[Note], list[LoreEntry]]:
    """Restrict the corpus to the active project; archived projects count as none."""
    if project is not None and project.archived:
        project = None
    notes, lore = list(notes), list(lore)
    if project is None:
        return None, notes, lore
    return (
        project,
        [n for n in notes if n.project_id == project.id],
        [l for l in lore if l.project_id == project.id],
    )


def format_project_block(
    project: Optional[Project],
    notes: Sequence[Note],
    lore: Sequence[LoreEntry],
    budget: ContextBudget,
) -> str:
    """Render the project-context block, or "" when there is nothing to say."""
    if not (project or notes or lore):
        return ""
    lines = [PROJECT_HEADING]
    if project is not None:
        lines.append(f"ชื่อโปรเจกต์: {project.name}")
        if project.genre:
            lines.append(f"ประเภท: {project.genre}")
        if project.description:
            lines.append(f"คำอธิบายโปรเจกต์: {truncate(project.description, budget.description_chars)}")
    for note in notes:
        lines.append(f'โน้ต "{note.title}": {truncate(note.content, budget.note_chars)}')
    for entry in lore:
        lines.append(
            f'ข้อมูลโลก "{entry.title}" (ประเภท: {entry.type.value}): '
            f"{truncate(entry.content, budget.lore_chars)}"
        )
    return "\n".join(lines)


def format_references_block(
    references: Sequence[Union[Note, LoreEntry]],
    budget: ContextBudget,
) -> str:
    if not references:
        return ""
    lines = [REFERENCES_HEADING]
    for ref in references:
        body = truncate(ref.content, budget.reference_chars)
        if isinstance(ref, LoreEntry):
            lines.append(f'ข้อมูล "{ref.title}" (ประเภท: {ref.type.value}): {body}')
        else:
            lines.append(f'โน้ต "{ref.title}": {body}')
    return "\n".join(lines)


def resolve_references(
    reference_ids: Iterable[str],
    notes: Iterable[Note],
    lore: Iterable[LoreEntry],
) -> list[Union[Note, LoreEntry]]:
    """Look up ids in lore first, then notes. Unknown ids are skipped."""
    by_id: dict[str, Union[Note, LoreEntry]] = {n.id: n for n in notes}
    by_id.update({l.id: l for l in lore})
    resolved = []
    seen = set()
    for ref_id in reference_ids:
        if ref_id in by_id and ref_id not in seen:
            seen.add(ref_id)
            resolved.append(by_id[ref_id])
        elif ref_id not in by_id:
            logger.debug("Skipping unknown reference %s", ref_id)
    return resolved


def assemble_prompt(
    instruction: str,
    mode: OperationMode,
    *,
    notes: Iterable[Note] = (),
    lore: Iterable[LoreEntry] = (),
    project: Optional[Project] = None,
    reference_ids: Iterable[str] = (),
    history: Union[ChatHistory, Sequence[ChatTurn], None] = None,
    budget: Optional[ContextBudget] = None,
    custom_instruction: Optional[str] = None,
    max_exchanges: Optional[int] = None,
) -> AssembledPrompt:
    """
    Build one bounded prompt for a request.

    Raises:
        InputTooLarge: checked before anything is parsed
        EmptyInstruction: blank instruction in a mode that needs one
    """
    budget = budget or ContextBudget()
    check_instruction(instruction, mode, budget)

    notes, lore = list(notes), list(lore)
    cues = parse_input_cues(instruction)
    cues_block = format_cues_for_prompt(cues)

    active, scoped_notes, scoped_lore = select_scope(notes, lore, project)

    project_block = ""
    if mode.context_grounded:
        sampled_notes = rank_by_relevance(scoped_notes, instruction, lambda n: n.content)
        sampled_lore = rank_by_relevance(scoped_lore, instruction, lambda l: l.content)
        project_block = format_project_block(
            active,
            sampled_notes[:budget.max_context_notes],
            sampled_lore[:budget.max_context_lore],
            budget,
        )

    references_block = format_references_block(
        resolve_references(reference_ids, notes, lore), budget,
    )

    formatted = mode.format_prompt(
        instruction,
        FormatterContext(cues=cues, project_lore=tuple(scoped_lore)),
    )
    prompt = "\n\n".join(
        block for block in (formatted, cues_block, project_block, references_block)
        if block
    )

    if isinstance(history, ChatHistory):
        prior = history.turns
        if max_exchanges is None:
            max_exchanges = history.max_exchanges
    else:
        prior = list(history or [])
    if max_exchanges is None:
        max_exchanges = DEFAULT_MAX_EXCHANGES
    pending = trim_turns(prior + [ChatTurn(Role.USER, prompt)], max_exchanges)

    logger.debug(
        "Assembled prompt for %s: %d chars (cues=%d, project=%d, refs=%d)",
        mode.name, len(prompt), len(cues_block), len(project_block), len(references_block),
    )
    return AssembledPrompt(
        system_instruction=system_instruction_for(mode, custom_instruction),
        prompt=prompt,
        context=PromptContext(
            parsed_cues=cues_block,
            project_sample=project_block,
            selected_references=references_block,
        ),
        cues=cues,
        history=pending[:-1],
        pending_history=pending,
    )
