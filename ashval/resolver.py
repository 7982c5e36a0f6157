"""
Split settled model output into a structured block and prose.

Models are asked to put machine-readable attributes in a fenced YAML (or
JSON) block or in ``---`` frontmatter. The first such block is lifted
out; everything else is prose for the markdown renderer.
"""

import html
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import yaml

logger = logging.getLogger(__name__)

INITIAL_PLACEHOLDER = "ผลลัพธ์จาก AI จะปรากฏที่นี่..."
PROCESSING_PLACEHOLDER = "กำลังประมวลผล..."

MAX_TITLE_CHARS = 50

_STRUCTURED_RE = re.compile(
    r"```(?:yaml|yml|json)[ \t]*\n(?P<fenced>.*?)\n[ \t]*```"
    r"|\A\s*---[ \t]*\n(?P<front>.*?)\n---[ \t]*(?=\n|\Z)",
    re.DOTALL | re.IGNORECASE,
)
_TITLE_LINE_RE = re.compile(r"^title:\s*(.*)$", re.MULTILINE | re.IGNORECASE)

MarkdownRenderer = Callable[[str], str]


@dataclass(frozen=True)
class ResolvedResponse:
    """Settled text split into prose and an optional structured block."""
    prose: str
    structured_block: Optional[str] = None
    is_placeholder: bool = False

    @property
    def metadata(self) -> Optional[Any]:
        """
        The structured block parsed as YAML (JSON parses too).

        A block that does not parse is not an error: returns None and the
        raw block stays available as ``structured_block``.
        """
        if self.structured_block is None:
            return None
        try:
            return yaml.safe_load(self.structured_block)
        except yaml.YAMLError as e:
            logger.debug("Structured block is not valid YAML: %s", e)
            return None


def resolve_response(text: Optional[str]) -> ResolvedResponse:
    """
    Lift the first fenced or frontmatter block out of ``text``.

    Blank text resolves to the placeholder, flagged so that it is never
    stored as a model turn.
    """
    if not text or not text.strip():
        return ResolvedResponse(INITIAL_PLACEHOLDER, None, is_placeholder=True)

    match = _STRUCTURED_RE.search(text)
    if match is None:
        return ResolvedResponse(text.strip())

    block = match.group("fenced")
    if block is None:
        block = match.group("front")
    prose = (text[:match.start()] + text[match.end():]).strip()
    return ResolvedResponse(prose, block.strip())


def escape_preformatted(text: str) -> str:
    return f"<pre>{html.escape(text, quote=False)}</pre>"


def render_prose(prose: str, renderer: Optional[MarkdownRenderer] = None) -> str:
    """Render prose with the markdown renderer, or as escaped preformatted text."""
    if renderer is not None:
        try:
            return renderer(prose)
        except Exception as e:
            logger.warning("Markdown renderer failed, showing plain text: %s", e)
    return escape_preformatted(prose)


def render_live(text: str, renderer: Optional[MarkdownRenderer] = None) -> str:
    """Render the whole accumulated stream text; used after every chunk."""
    if not text.strip():
        return PROCESSING_PLACEHOLDER
    return render_prose(text, renderer)


def suggest_note_title(resolved: ResolvedResponse, mode_name: str = "") -> str:
    """
    Pick a title for saving a response as a note.

    Order: a ``title:`` line in the structured block, then the first
    non-blank prose line, then a generic label.
    """
    if resolved.structured_block:
        match = _TITLE_LINE_RE.search(resolved.structured_block)
        if match:
            title = match.group(1).strip().strip("\"'")
            if title:
                return title[:MAX_TITLE_CHARS]
    if not resolved.is_placeholder:
        for line in resolved.prose.splitlines():
            line = line.strip().lstrip("#*> ").rstrip("*").strip()
            if line:
                return line[:MAX_TITLE_CHARS]
    return f"AI Response - {mode_name}" if mode_name else "AI Response"
