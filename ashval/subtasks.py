"""
Break a task into suggested subtasks with the model.

Runs as its own request, independent of any drafting stream.
"""

import json
import logging
import re
from typing import Optional

from .providers.base import GenerationProvider
from .routing import KeyRouter

logger = logging.getLogger(__name__)

SUBTASK_SYSTEM_PROMPT = (
    "คุณคือ AI ผู้ช่วยในการจัดการงานที่มีประสิทธิภาพ หน้าที่ของคุณคือช่วยผู้ใช้"
    "แบ่งงานหลักออกเป็นงานย่อยๆ ที่สามารถดำเนินการได้ เมื่อได้รับชื่อของงานหลัก"
    "และประเภทของงาน โปรดสร้างรายการงานย่อย 3-5 รายการที่ชัดเจนและกระชับ "
    "แต่ละงานย่อยควรเป็นขั้นตอนที่นำไปสู่การทำงานหลักให้สำเร็จลุล่วง "
    "ตอบกลับเป็น JSON array ของสตริงเท่านั้น โดยแต่ละสตริงคืองานย่อยหนึ่งรายการ "
    "อย่าใส่คำอธิบายใดๆ นอกเหนือจาก JSON array"
)

DEFAULT_CATEGORY = "ทั่วไป"

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def build_subtask_prompt(task_title: str, category: Optional[str] = None) -> str:
    return (
        f'ชื่องานหลัก: "{task_title}"\n'
        f'ประเภท: "{category or DEFAULT_CATEGORY}"\n\n'
        "กรุณาสร้างงานย่อยเป็น JSON array ของสตริง"
    )


def parse_subtasks(text: str) -> list[str]:
    """
    Parse a JSON array of strings from model output.

    A surrounding code fence is stripped. Anything other than a list of
    strings yields [] with a warning.
    """
    if not text:
        return []
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(2).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Failed to parse subtask JSON: %.200s", text)
        return []
    if not isinstance(data, list) or not all(isinstance(s, str) for s in data):
        logger.warning("Subtask response is not a JSON array of strings: %.200s", text)
        return []
    return [s.strip() for s in data if s.strip()]


async def suggest_subtasks(
    task_title: str,
    provider: GenerationProvider,
    router: KeyRouter,
    category: Optional[str] = None,
) -> list[str]:
    """
    Ask the model for 3-5 subtasks of ``task_title``.

    Credential problems propagate, as for any request. Provider failures
    and malformed output are logged and give an empty list.

    Raises:
        ValueError: the task title is blank
        NoUsableCredential, CredentialAcquisitionCancelled: from the router
    """
    if not task_title or not task_title.strip():
        raise ValueError("Task title is required")

    decision = await router.resolve()
    try:
        result = await provider.generate(
            SUBTASK_SYSTEM_PROMPT,
            build_subtask_prompt(task_title.strip(), category),
            decision,
        )
    except Exception as e:
        logger.warning("Subtask generation failed (model %s): %s", decision.model, e)
        return []
    if not result:
        logger.warning("Provider %s returned no subtasks", type(provider).__name__)
        return []
    return parse_subtasks(result)
