"""
Learning plan synthesis

Three chained generation stages, each with its own fallback:

1. Framework  - full document with a learning plan placeholder
               (fallback: local template with goal, experience and score)
2. Structure  - ordered phase/module skeleton with unfilled module bodies
               (fallback: none, and Stage 3 is skipped for the run)
3. Content    - the skeleton with every module body filled in
               (fallback: the unfilled Stage 2 skeleton)

The stitched markdown is handed to the renderer. A render failure never
fails synthesis; the plan text is still returned.
"""
import asyncio
import base64
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from placement_api.errors import GenerationClientError
from placement_api.services.generation_client import GenerationClient, GenerationRequest, synthesis_client
from placement_api.services.prompts import (
    CONTENT_SYSTEM_PROMPT,
    FRAMEWORK_SYSTEM_PROMPT,
    LEARNING_PLAN_HEADING,
    LEARNING_PLAN_PLACEHOLDER,
    STRUCTURE_SYSTEM_PROMPT,
    build_content_prompt,
    build_framework_prompt,
    build_structure_prompt,
)
from placement_api.services.renderer import PDF_CONTENT_TYPE, build_plan_filename, render_markdown_pdf
from placement_api.services.usage_service import record_generation_usage
from placement_api.utils.artifacts import save_artifact
from placement_api.utils.deadline import Deadline

logger = logging.getLogger(__name__)

BOOKS = "\U0001F4DA"

# Searched in order; the first hit wins
LEARNING_PLAN_MARKERS = (
    f"## {BOOKS} 3. Learning Plan",
    "## 3. Learning Plan",
    "## 4. Learning Plan",
    "## Learning Plan",
    "### Learning Plan",
)

_PLACEHOLDER_BLOCK = re.compile(
    r"^##[ \t]*(?:" + BOOKS + r"[ \t]*)?3\.[ \t]*Learning Plan[ \t]*\r?\n\s*"
    + re.escape(LEARNING_PLAN_PLACEHOLDER),
    re.MULTILINE,
)
_PLAN_HEADING = re.compile(r"^#{2,3}[ \t]*(?:" + BOOKS + r"[ \t]*)?(?:\d+\.[ \t]*)?Learning Plan", re.MULTILINE)

Renderer = Callable[[str, Dict[str, Any]], bytes]


@dataclass
class PlanResult:
    document: str
    framework_completed: bool
    structure_completed: bool
    content_completed: bool
    content_skipped: bool
    rendered: bool
    score: int
    level: str
    summary: str
    pdf: Optional[Dict[str, str]] = None
    artifact_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def diagnostic_score(responses: List[Dict[str, Any]]) -> int:
    """Percentage of questions answered correctly"""
    if not responses:
        return 0
    correct = sum(1 for item in responses if item.get("is_correct"))
    return round(correct * 100 / len(responses))


def level_for_score(score: int) -> str:
    if score > 66:
        return "Advanced"
    if score > 33:
        return "Intermediate"
    return "Beginner"


def build_summary(responses: List[Dict[str, Any]], score: int, level: str) -> str:
    correct = sum(1 for item in responses if item.get("is_correct"))
    gaps = [item["concept"] for item in responses if item.get("concept") and not item.get("is_correct")]
    summary = f"Placement score {score}% ({level}): {correct} of {len(responses)} questions answered correctly."
    if gaps:
        summary += f" Focus areas: {', '.join(gaps[:5])}."
    return summary


def fallback_framework(goal: str, experience: str, score: int) -> str:
    return (
        "## Learning Plan Summary\n\n"
        f"**Goal:** {goal or 'Not provided'}\n"
        f"**Current Level:** {experience or 'Not provided'}\n"
        f"**Assessment Score:** {score}%\n\n"
        f"{LEARNING_PLAN_HEADING}\n"
        f"{LEARNING_PLAN_PLACEHOLDER}\n"
    )


def extract_learning_plan_section(text: Optional[str]) -> str:
    """Cut the structure output down to its learning plan section, or return it whole"""
    if not text:
        return ""
    for marker in LEARNING_PLAN_MARKERS:
        index = text.find(marker)
        if index != -1:
            return text[index:].strip()
    return text.strip()


def stitch_document(framework: str, details: str) -> str:
    """
    Put the learning plan details where the framework left its placeholder

    Tries the heading-plus-placeholder block first, then the bare marker,
    and otherwise appends the details after the framework.
    """
    details = details.strip()

    block = _PLACEHOLDER_BLOCK.search(framework)
    if block:
        replacement = details if _PLAN_HEADING.match(details) else f"{LEARNING_PLAN_HEADING}\n{details}"
        return f"{framework[:block.start()]}{replacement}{framework[block.end():]}"

    if LEARNING_PLAN_PLACEHOLDER in framework:
        return framework.replace(LEARNING_PLAN_PLACEHOLDER, details, 1)

    return f"{framework.rstrip()}\n\n{details}"


class PlanSynthesizer:
    """Runs the framework -> structure -> content chain and renders the result"""

    def __init__(self, client: Optional[GenerationClient] = None, renderer: Optional[Renderer] = None):
        self.client = client or synthesis_client
        self.renderer = renderer or render_markdown_pdf

    async def synthesize(
        self,
        db: Optional[Session],
        *,
        user_id: Optional[str],
        goal: str,
        experience: str,
        responses: List[Dict[str, Any]],
        deadline: Optional[Deadline] = None
    ) -> PlanResult:
        """
        Build the learning plan for a completed attempt

        Never raises for upstream failures; per-stage flags report what
        degraded.
        """
        deadline = deadline or Deadline.never()
        score = diagnostic_score(responses)
        level = level_for_score(score)

        framework = await self._run_stage(
            db, user_id, "framework",
            FRAMEWORK_SYSTEM_PROMPT,
            build_framework_prompt(goal, experience, responses),
            deadline,
            max_output_tokens=4000,
        )
        framework_completed = framework is not None
        if not framework_completed:
            framework = fallback_framework(goal, experience, score)

        structure = await self._run_stage(
            db, user_id, "structure",
            STRUCTURE_SYSTEM_PROMPT,
            build_structure_prompt(goal, experience, responses),
            deadline,
            max_output_tokens=16000,
        )
        structure_completed = structure is not None

        content_completed = False
        content_skipped = False
        if structure_completed:
            skeleton = extract_learning_plan_section(structure)
            content = await self._run_stage(
                db, user_id, "content",
                CONTENT_SYSTEM_PROMPT,
                build_content_prompt(goal, experience, responses, skeleton),
                deadline,
                max_output_tokens=32000,
                web_search=True,
            )
            content_completed = content is not None
            document = stitch_document(framework, content if content_completed else skeleton)
        else:
            content_skipped = True
            logger.warning("Plan structure stage failed; skipping content stage")
            document = framework

        logger.info(
            f"Plan synthesized for user {user_id}: framework={framework_completed}, "
            f"structure={structure_completed}, content={content_completed}, score={score}%"
        )

        result = PlanResult(
            document=document,
            framework_completed=framework_completed,
            structure_completed=structure_completed,
            content_completed=content_completed,
            content_skipped=content_skipped,
            rendered=False,
            score=score,
            level=level,
            summary=build_summary(responses, score, level),
        )
        await self._render(result, goal, experience, deadline)
        return result

    async def _run_stage(
        self,
        db: Optional[Session],
        user_id: Optional[str],
        stage: str,
        system_prompt: str,
        prompt: str,
        deadline: Deadline,
        *,
        max_output_tokens: int,
        web_search: bool = False
    ) -> Optional[str]:
        """One stage call; None means the stage failed and its fallback applies"""
        request = GenerationRequest(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            max_output_tokens=max_output_tokens,
            web_search=web_search,
        )
        logger.info(f"Plan stage {stage} started")

        try:
            result = await self.client.generate(request, deadline=deadline)
        except GenerationClientError as e:
            logger.warning(f"Plan stage {stage} failed: {str(e)}")
            return None

        text = (result.text or "").strip()
        if not text:
            logger.warning(f"Plan stage {stage} returned empty output")
            return None

        if db is not None:
            record_generation_usage(db, user_id, f"plan_{stage}", result)

        logger.info(f"Plan stage {stage} completed ({len(text)} chars, {result.latency_ms}ms)")
        return text

    async def _render(self, result: PlanResult, goal: str, experience: str, deadline: Deadline) -> None:
        meta = {"goal": goal, "experience": experience, "score": result.score}
        try:
            pdf_bytes = await asyncio.wait_for(
                asyncio.to_thread(self.renderer, result.document, meta),
                timeout=deadline.remaining()
            )
        except Exception as e:
            # The renderer is an external collaborator; the plan text still goes out
            logger.error(f"Plan rendering failed: {str(e)}")
            return

        filename = build_plan_filename(goal)
        result.rendered = True
        result.pdf = {
            "filename": filename,
            "content_type": PDF_CONTENT_TYPE,
            "base64": base64.b64encode(pdf_bytes).decode("ascii"),
        }

        try:
            result.artifact_path = await save_artifact(filename, pdf_bytes)
        except OSError as e:
            logger.error(f"Failed to store plan artifact {filename}: {str(e)}")


# Global instance
plan_synthesizer = PlanSynthesizer()
