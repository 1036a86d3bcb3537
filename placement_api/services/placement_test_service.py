"""
Placement test generation

Builds the assessment prompt, retries once with a stricter JSON directive,
normalizes the parsed test and persists it (test, questions in generation
order, usage) in a single transaction.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_api.config import settings
from placement_api.errors import GenerationClientError, GenerationFailed
from placement_api.models import PlacementQuestion, PlacementTest
from placement_api.services.answer_evaluator import normalize_choice_letter
from placement_api.services.generation_client import (
    GenerationClient,
    GenerationRequest,
    GenerationResult,
    generation_client,
)
from placement_api.services.prompts import STRICT_JSON_DIRECTIVE, TEST_SYSTEM_PROMPT, build_placement_prompt
from placement_api.services.usage_service import build_usage_record
from placement_api.utils.deadline import Deadline
from placement_api.utils.parsers import parse_json_safe
from placement_api.utils.text import clean_string, string_or, strip_control, truncate

logger = logging.getLogger(__name__)

MAX_OPTIONS = 4
EMPTY_ANSWERS = {"", "null", "n/a", "none"}
_OPTION_PREFIX = re.compile(r"^\(?[A-Da-d][.):]\s*")


@dataclass
class GeneratedTest:
    """What the caller gets back; correct answers and explanations stay server-side"""
    test_id: int
    topic: str
    prerequisites: List[str]
    total_questions: int
    questions: List[Dict[str, Any]] = field(default_factory=list)


def is_valid_placement(parsed: Optional[Dict[str, Any]]) -> bool:
    return bool(parsed) and isinstance(parsed.get("questions"), list) and len(parsed["questions"]) > 0


def normalize_correct_answer(value: Any) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    if trimmed.lower() in EMPTY_ANSWERS:
        return None
    return trimmed


def _normalize_options(raw_options: Any) -> List[str]:
    if not isinstance(raw_options, list):
        return []
    options = []
    for option in raw_options:
        if option is None:
            continue
        cleaned = strip_control(option)
        if cleaned:
            options.append(cleaned)
    return options[:MAX_OPTIONS]


def _resolve_choice(answer: str, options: List[str]) -> Optional[str]:
    """Map a stored multiple choice answer onto its letter, by option text first, then by letter"""
    needle = answer.strip().lower()
    for index, option in enumerate(options):
        if _OPTION_PREFIX.sub("", option).strip().lower() == needle or option.strip().lower() == needle:
            return chr(ord("A") + index)

    letter = normalize_choice_letter(answer)
    if letter and ord(letter) - ord("A") < len(options):
        return letter
    return None


def normalize_question(raw: Any, position: int) -> Optional[Dict[str, Any]]:
    """
    Normalize one generated question, or return None if it has no text

    A multiple choice declaration only survives with at least two options and
    a usable correct answer; anything else is demoted to a text question.
    """
    if not isinstance(raw, dict):
        return None

    question_text = strip_control(raw.get("question") or raw.get("question_text") or "")
    if not question_text:
        return None

    declared = str(raw.get("type") or "").strip().lower()
    options = _normalize_options(raw.get("options"))
    correct_answer = normalize_correct_answer(raw.get("correct_answer"))

    question_type = "text"
    if declared == "multiple_choice":
        choice = _resolve_choice(correct_answer, options) if correct_answer and len(options) >= 2 else None
        if choice:
            question_type = "multiple_choice"
            correct_answer = choice
    elif declared == "scenario":
        question_type = "scenario"

    if question_type != "multiple_choice":
        options = []
        correct_answer = None

    local_id = raw.get("id")
    if not isinstance(local_id, int):
        local_id = position

    return {
        "id": local_id,
        "question": question_text,
        "type": question_type,
        "options": options or None,
        "correct_answer": correct_answer,
        "explanation": clean_string(raw.get("explanation")),
        "concept": clean_string(raw.get("assesses") or raw.get("concept")),
    }


def normalize_placement(parsed: Dict[str, Any], goal: Optional[str]) -> Dict[str, Any]:
    questions = []
    for raw in parsed.get("questions") or []:
        question = normalize_question(raw, len(questions) + 1)
        if question:
            questions.append(question)

    prerequisites = parsed.get("prerequisites")
    if not isinstance(prerequisites, list):
        prerequisites = []

    return {
        "topic": strip_control(string_or(parsed.get("topic"), goal or "General Placement")),
        "prerequisites": [strip_control(item) for item in prerequisites if isinstance(item, str) and item.strip()],
        "questions": questions,
    }


class PlacementTestGenerator:
    """Generates and persists placement tests"""

    ENDPOINT = "placement_test"

    def __init__(self, client: Optional[GenerationClient] = None):
        self.client = client or generation_client

    async def generate_and_store(
        self,
        db: Session,
        *,
        user_id: str,
        goal: str,
        experience: str,
        deadline: Optional[Deadline] = None
    ) -> GeneratedTest:
        """
        Generate a placement test and persist it

        Raises:
            GenerationFailed: the model never produced a usable test; nothing is persisted
        """
        deadline = deadline or Deadline.after(settings.TEST_GENERATION_DEADLINE_SECONDS)
        prompt = build_placement_prompt(goal, experience)
        calls: List[GenerationResult] = []

        parsed = await self._request(prompt, json_mode=False, deadline=deadline, calls=calls)
        if not is_valid_placement(parsed):
            logger.warning(f"Placement test response for user {user_id} had no questions, retrying with strict JSON")
            parsed = await self._request(
                f"{prompt}\n\n{STRICT_JSON_DIRECTIVE}",
                json_mode=True,
                deadline=deadline,
                calls=calls
            )

        if not is_valid_placement(parsed):
            logger.error(f"Placement test generation returned invalid structure twice: {truncate(calls[-1].text)}")
            raise GenerationFailed("Model did not return a valid placement test")

        placement = normalize_placement(parsed, goal)
        if not placement["questions"]:
            raise GenerationFailed("Generated placement test had no usable questions")

        return self._persist(db, user_id, goal, experience, placement, calls)

    async def _request(
        self,
        prompt: str,
        *,
        json_mode: bool,
        deadline: Deadline,
        calls: List[GenerationResult]
    ) -> Optional[Dict[str, Any]]:
        request = GenerationRequest(
            messages=[
                {"role": "system", "content": TEST_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_output_tokens=settings.TEST_MAX_OUTPUT_TOKENS,
            json_mode=json_mode,
        )
        try:
            result = await self.client.generate(request, deadline=deadline)
        except GenerationClientError as e:
            logger.error(f"Placement test generation request failed: {str(e)}")
            raise GenerationFailed("Placement test generation is temporarily unavailable") from e

        calls.append(result)
        return parse_json_safe(result.text)

    def _persist(
        self,
        db: Session,
        user_id: str,
        goal: str,
        experience: str,
        placement: Dict[str, Any],
        calls: List[GenerationResult]
    ) -> GeneratedTest:
        model = calls[-1].model if calls else self.client.model
        questions = placement["questions"]

        try:
            test = PlacementTest(
                user_id=user_id,
                topic=placement["topic"],
                goal=goal,
                experience_level=experience,
                model_used=model,
                prerequisites=placement["prerequisites"],
                total_questions=len(questions),
            )
            db.add(test)
            db.flush()

            stored = []
            for question in questions:
                row = PlacementQuestion(
                    test_id=test.id,
                    concept_tag=question["concept"],
                    question_text=question["question"],
                    type=question["type"],
                    options=question["options"],
                    correct_answer=question["correct_answer"],
                    explanation=question["explanation"],
                )
                db.add(row)
                # Flush one at a time so storage ids follow generation order
                db.flush()
                stored.append(row)

            db.add(build_usage_record(
                user_id=user_id,
                endpoint=self.ENDPOINT,
                model=model,
                tokens_input=sum(call.usage.tokens_input for call in calls),
                tokens_output=sum(call.usage.tokens_output for call in calls),
                cached=any(call.usage.cached for call in calls),
                response_time_ms=sum(call.latency_ms for call in calls),
                request_id=calls[-1].request_id if calls else None,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist placement test for user {user_id}: {str(e)}")
            raise

        logger.info(f"Stored placement test {test.id} with {len(stored)} questions for user {user_id}")

        return GeneratedTest(
            test_id=test.id,
            topic=test.topic,
            prerequisites=list(test.prerequisites or []),
            total_questions=test.total_questions,
            questions=[
                {
                    "question_id": row.id,
                    "order": order,
                    "question": row.question_text,
                    "type": row.type,
                    "options": row.options,
                    "concept": row.concept_tag,
                }
                for order, row in enumerate(stored, start=1)
            ],
        )


# Global instance
placement_test_generator = PlacementTestGenerator()
