"""
Operation modes for the AI writer.

A mode picks the system instruction sent to the model and, optionally,
a formatter that wraps the user's instruction. Context-grounded modes
also receive a sample of the project's notes and lore.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import UnknownMode
from .notation import InputCues
from .types import LoreEntry


@dataclass(frozen=True)
class FormatterContext:
    """Extra data a prompt formatter may use."""
    cues: InputCues = field(default_factory=InputCues)
    project_lore: tuple[LoreEntry, ...] = ()


PromptFormatter = Callable[[str, FormatterContext], str]


@dataclass(frozen=True)
class OperationMode:
    name: str
    label: str
    system_instruction: str
    formatter: Optional[PromptFormatter] = None
    context_grounded: bool = False
    requires_input: bool = True

    def format_prompt(self, instruction: str, context: Optional[FormatterContext] = None) -> str:
        if self.formatter is None:
            return instruction
        return self.formatter(instruction, context or FormatterContext())


def _prefixed(prefix: str) -> PromptFormatter:
    def formatter(instruction: str, context: FormatterContext) -> str:
        return f"{prefix}\n\n{instruction}"
    return formatter


def _lore_consistency(instruction: str, context: FormatterContext) -> str:
    lines = [f"ตรวจสอบความสอดคล้องของเนื้อหาต่อไปนี้กับข้อมูลโลก:\n\n{instruction}"]
    if context.project_lore:
        lines.append("\nข้อมูลโลกที่มีอยู่:")
        lines.extend(f"- {l.title} ({l.type.value})" for l in context.project_lore)
    return "\n".join(lines)


def _scene_creation(instruction: str, context: FormatterContext) -> str:
    if instruction.strip():
        return f"สร้างฉากใหม่ตามรายละเอียดต่อไปนี้:\n\n{instruction}"
    return "สร้างฉากใหม่ที่น่าสนใจจากข้อมูลโปรเจกต์ที่มี"


DEFAULT_CUSTOM_INSTRUCTION = (
    "You are a helpful creative-writing assistant. Follow the user's "
    "instructions precisely and answer in the language of the request."
)

_MODES = [
    OperationMode(
        "grammar-check", "ตรวจไวยากรณ์และการสะกด",
        "You are a meticulous editor. Correct grammar, spelling and punctuation "
        "while keeping the author's voice. Return the corrected text, then a "
        "short list of the changes.",
    ),
    OperationMode(
        "translate", "แปลภาษา",
        "You are a literary translator. Translate the text between Thai and "
        "English, preserving tone, idiom and formatting.",
    ),
    OperationMode(
        "brainstorm", "ระดมความคิด",
        "You are a creative partner. Offer varied, concrete ideas that build on "
        "the user's premise.",
        formatter=_prefixed("ช่วยระดมความคิดสำหรับ:"),
    ),
    OperationMode(
        "scene-analysis", "วิเคราะห์ฉาก",
        "You are a story editor. Analyse the scene's pacing, conflict, point of "
        "view and sensory detail, and suggest specific improvements.",
        formatter=_prefixed("วิเคราะห์ฉากต่อไปนี้:"),
        context_grounded=True,
    ),
    OperationMode(
        "character-analysis", "วิเคราะห์ตัวละคร",
        "You are a character development coach. Examine motivation, arc, voice "
        "and consistency of the characters involved.",
        context_grounded=True,
    ),
    OperationMode(
        "magic-system", "ออกแบบระบบเวทมนตร์",
        "You are a worldbuilding consultant. Design or refine a magic system "
        "with clear rules, costs and limits. Put structured attributes in a "
        "YAML block.",
        context_grounded=True,
    ),
    OperationMode(
        "plot-structuring", "วางโครงเรื่อง",
        "You are a plot architect. Organise the material into acts and beats, "
        "pointing out gaps and stakes.",
        context_grounded=True,
    ),
    OperationMode(
        "tone-sentiment-analysis", "วิเคราะห์โทนและอารมณ์",
        "You analyse tone and sentiment in fiction. Describe the mood, how it "
        "shifts, and which words create it.",
        context_grounded=True,
    ),
    OperationMode(
        "lore-consistency-check", "ตรวจความสอดคล้องของข้อมูลโลก",
        "You check fiction against its established world. List every "
        "contradiction with the known lore and propose fixes.",
        formatter=_lore_consistency,
        context_grounded=True,
    ),
    OperationMode(
        "continuity-check", "ตรวจความต่อเนื่อง",
        "You are a continuity editor. Find timeline, location and character "
        "continuity errors.",
        context_grounded=True,
    ),
    OperationMode(
        "scene-creation", "สร้างฉาก",
        "You are a novelist. Write a vivid scene that fits the project's world "
        "and characters.",
        formatter=_scene_creation,
        context_grounded=True,
        requires_input=False,
    ),
    OperationMode(
        "scene-rewrite", "เขียนฉากใหม่",
        "You are a novelist. Rewrite the scene to be tighter and more vivid "
        "while keeping its events.",
        context_grounded=True,
    ),
    OperationMode(
        "show-dont-tell-enhancer", "เปลี่ยนการบอกเป็นการแสดง",
        "Rewrite passages that tell emotions or traits so that they show them "
        "through action, dialogue and detail.",
        context_grounded=True,
    ),
    OperationMode(
        "rate-scene", "ให้คะแนนฉาก",
        "Rate the scene from 1 to 10 on engagement, clarity, pacing and prose. "
        "Put the scores in a YAML block, then explain them.",
        context_grounded=True,
    ),
    OperationMode(
        "create-world", "สร้างโลก",
        "You are a worldbuilder. Create a setting with geography, cultures, "
        "history and conflicts. Start with a YAML block holding a title and "
        "key facts.",
        context_grounded=True,
    ),
    OperationMode(
        "dialogue-generation", "สร้างบทสนทนา",
        "Write natural dialogue that reveals character and moves the scene "
        "forward.",
        context_grounded=True,
    ),
    OperationMode(
        "summarize-elaborate", "สรุปหรือขยายความ",
        "Summarise the text if it is long, or elaborate it if it is a sketch, "
        "keeping it consistent with the project.",
        context_grounded=True,
    ),
    OperationMode(
        "custom", "กำหนดเอง",
        DEFAULT_CUSTOM_INSTRUCTION,
        context_grounded=True,
    ),
]

OPERATION_MODES: dict[str, OperationMode] = {m.name: m for m in _MODES}

CONTEXT_GROUNDED_MODES = frozenset(m.name for m in _MODES if m.context_grounded)

DEFAULT_MODE = _MODES[0].name


def get_mode(name: str) -> OperationMode:
    try:
        return OPERATION_MODES[name]
    except KeyError:
        raise UnknownMode(f"Unknown operation mode: {name!r}") from None


def system_instruction_for(mode: OperationMode, custom_instruction: Optional[str] = None) -> str:
    """The system instruction to send: a non-blank custom one wins in custom mode."""
    if mode.name == "custom" and custom_instruction and custom_instruction.strip():
        return custom_instruction.strip()
    return mode.system_instruction
