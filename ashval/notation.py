"""
Inline notation parsing.

Three kinds of notation appear in note and instruction text:

- links: ``[[Title]]`` or ``[[Title|Display]]``
- lore references: ``[[Title|Type]]`` and ``@Name`` mentions
- structured cues: Markdown-ish lines such as ``# Title``, ``## Section``
  and ``- Tone: grim``, with Thai synonyms for every label

All functions here are pure: the same text always yields the same result.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from .types import LoreType, NoteLink


# Bracket content may not contain brackets, so "[[a [[b]]" links to "b" and
# an unterminated "[[a" links to nothing.
_LINK_RE = re.compile(r"\[\[([^\[\]]*)\]\]")
_LORE_BRACKET_RE = re.compile(r"\[\[([^|\[\]]+)(?:\|([^\[\]]+))?\]\]")

# \w misses Thai combining vowels and tone marks, so the Thai block is added
_NAME_CHARS = r"[\w\u0e00-\u0e7f-]"
MENTION_RE = re.compile(rf"@({_NAME_CHARS}+)")


@dataclass(frozen=True)
class LoreNotation:
    """A lore reference found in text: a title and its declared type."""
    title: str
    type: LoreType


@dataclass
class InputCues:
    """Structured fields extracted from an instruction."""
    title: Optional[str] = None
    sections: list[str] = field(default_factory=list)
    characters: list[str] = field(default_factory=list)
    setting: Optional[str] = None
    plot_points: list[str] = field(default_factory=list)
    tone: Optional[str] = None
    objective: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.title or self.sections or self.characters or self.setting
                    or self.plot_points or self.tone or self.objective)


def parse_note_links(text: str) -> list[NoteLink]:
    """
    Extract forward links in order of appearance.

    The target is the part before the first ``|`` (or the whole bracket
    content), trimmed. Empty targets are dropped; duplicates are kept.
    """
    links = []
    for match in _LINK_RE.finditer(text or ""):
        target = match.group(1).split("|", 1)[0].strip()
        if target:
            links.append(NoteLink(target))
    return links


def parse_lore_notations(text: str) -> list[LoreNotation]:
    """
    Extract lore references: all bracket forms first, then all mentions.

    ``[[Title|Type]]`` takes its type from the enum, defaulting to Concept
    when the type is absent or unknown. ``@Name`` is always a Character.
    """
    text = text or ""
    found = []
    for match in _LORE_BRACKET_RE.finditer(text):
        title = match.group(1).strip()
        if title:
            found.append(LoreNotation(title, LoreType.parse(match.group(2))))
    for match in MENTION_RE.finditer(text):
        title = match.group(1).strip()
        if title:
            found.append(LoreNotation(title, LoreType.CHARACTER))
    return found


# ---------------------------------------------------------------------------
# Structured cues
# ---------------------------------------------------------------------------

_TITLE_RE = re.compile(r"^#\s+(.*)")
_SECTION_RE = re.compile(r"^##\s+(.*)")


def _label_re(*labels: str) -> re.Pattern:
    return re.compile(rf"^- (?:{'|'.join(labels)}):\s*(.*)", re.IGNORECASE)


_CHARACTER_RE = _label_re("Character", "ตัวละคร", "Char")
_SETTING_RE = _label_re("Setting", "สถานที่", "Location")
_PLOT_RE = _label_re("Plot Point", "Plot", "โครงเรื่องย่อย", "โครงฉาก")
_TONE_RE = _label_re("Tone", "โทน", "อารมณ์")
_OBJECTIVE_RE = _label_re("Objective", "เป้าหมาย", "จุดประสงค์")


def parse_input_cues(text: str) -> InputCues:
    """
    Line-oriented extraction of structured cues from an instruction.

    Scalar fields (title, setting, tone, objective) keep the last value
    seen; sections and plot points accumulate. Characters come from
    ``- Character:`` lines (comma separated) and from ``@name`` mentions,
    with underscores read as spaces and duplicates removed.
    """
    cues = InputCues()
    characters: list[str] = []

    for line in (text or "").splitlines():
        if m := _TITLE_RE.match(line):
            cues.title = m.group(1).strip()
        if m := _SECTION_RE.match(line):
            cues.sections.append(m.group(1).strip())
        if m := _CHARACTER_RE.match(line):
            characters.extend(s.strip() for s in m.group(1).split(","))
        characters.extend(m.group(1) for m in MENTION_RE.finditer(line))
        if m := _SETTING_RE.match(line):
            cues.setting = m.group(1).strip()
        if m := _PLOT_RE.match(line):
            cues.plot_points.append(m.group(1).strip())
        if m := _TONE_RE.match(line):
            cues.tone = m.group(1).strip()
        if m := _OBJECTIVE_RE.match(line):
            cues.objective = m.group(1).strip()

    seen = set()
    for name in characters:
        name = name.replace("_", " ").strip()
        if name and name not in seen:
            seen.add(name)
            cues.characters.append(name)
    return cues


CUES_HEADING = "## ข้อมูลเพิ่มเติมจากคำสั่ง (Parsed Input Context):"


def format_cues_for_prompt(cues: InputCues) -> str:
    """Render cues as a labeled prompt block, or "" when there are none."""
    if cues.is_empty():
        return ""
    lines = [CUES_HEADING]
    if cues.title:
        lines.append(f"ชื่อเรื่อง/ฉากที่ระบุ: {cues.title}")
    if cues.sections:
        lines.append(f"ส่วนย่อยที่ระบุ: {', '.join(cues.sections)}")
    if cues.characters:
        lines.append(f"ตัวละครที่เกี่ยวข้อง: {', '.join(cues.characters)}")
    if cues.setting:
        lines.append(f"สถานที่/ฉากหลัง: {cues.setting}")
    if cues.plot_points:
        lines.append("ประเด็นสำคัญ/โครงเรื่องย่อย:")
        lines.extend(f"- {p}" for p in cues.plot_points)
    if cues.tone:
        lines.append(f"โทน/อารมณ์ที่ต้องการ: {cues.tone}")
    if cues.objective:
        lines.append(f"เป้าหมาย/จุดประสงค์ของคำสั่งนี้: {cues.objective}")
    return "\n".join(lines)
