"""
Answer evaluation
Multiple choice: deterministic letter match
Text/scenario: judged by the generation model, fail-closed
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from placement_api.config import settings
from placement_api.errors import GenerationClientError
from placement_api.services.generation_client import (
    GenerationClient,
    GenerationRequest,
    GenerationResult,
    generation_client,
)
from placement_api.services.prompts import build_judge_prompt
from placement_api.utils.deadline import Deadline
from placement_api.utils.parsers import parse_json_and_reasoning, parse_json_safe
from placement_api.utils.text import clean_string, truncate

logger = logging.getLogger(__name__)

_LEADING_LETTER = re.compile(r"^\s*\(?([A-Da-d])(?:[\s.):]|$)")
_STANDALONE_LETTER = re.compile(r"(?:^|[\s:(])([A-Da-d])(?=$|[\s.):])")


class Verdict(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    INCONCLUSIVE = "inconclusive"  # judge could not be reached or parsed


@dataclass
class Evaluation:
    """
    Outcome of grading a single answer

    ``stored_response`` is what gets persisted as the learner's response.
    ``suggested_answer`` is only set when the judge produced its own ideal
    answer, which is what the lazy backfill writes.
    """
    verdict: Verdict
    stored_response: Optional[str]
    ideal_answer: Optional[str] = None
    feedback: Optional[str] = None
    suggested_answer: Optional[str] = None
    result: Optional[GenerationResult] = None

    @property
    def is_correct(self) -> bool:
        # INCONCLUSIVE is persisted as incorrect
        return self.verdict is Verdict.CORRECT


def normalize_choice_letter(value: Any) -> Optional[str]:
    """
    Extract the chosen option letter from a raw submission

    "b", "B. the second option" and "Answer: B" all give "B". Text with no
    option letter gives None.
    """
    if value is None:
        return None
    text = str(value)
    match = _LEADING_LETTER.match(text) or _STANDALONE_LETTER.search(text)
    return match.group(1).upper() if match else None


def grade_multiple_choice(response: Any, correct_answer: Optional[str]) -> Evaluation:
    letter = normalize_choice_letter(response)
    if letter is None:
        raw = "" if response is None else str(response).strip()
        return Evaluation(verdict=Verdict.INCORRECT, stored_response=raw)

    expected = normalize_choice_letter(correct_answer)
    is_correct = expected is not None and letter == expected
    return Evaluation(
        verdict=Verdict.CORRECT if is_correct else Verdict.INCORRECT,
        stored_response=letter,
    )


def skipped() -> Evaluation:
    return Evaluation(verdict=Verdict.INCORRECT, stored_response=None)


class AnswerEvaluator:
    """Judges free-text answers against the stored reference"""

    def __init__(self, client: Optional[GenerationClient] = None):
        self.client = client or generation_client

    async def evaluate_text_answer(
        self,
        question_text: str,
        reference_answer: Optional[str],
        explanation: Optional[str],
        user_answer: str,
        deadline: Optional[Deadline] = None
    ) -> Evaluation:
        """
        Judge a free-text answer

        Never raises for upstream problems: a failed or unparseable judgement
        is INCONCLUSIVE, with the stored reference as the ideal answer.
        """
        deadline = (deadline or Deadline.never()).cap(settings.JUDGE_TIMEOUT_SECONDS)
        stored_response = user_answer.strip()
        reference = clean_string(reference_answer)

        request = GenerationRequest(
            messages=[{
                "role": "user",
                "content": build_judge_prompt(question_text, reference, explanation, stored_response),
            }],
            temperature=0.2,
            max_output_tokens=600,
            json_mode=True,
        )

        try:
            result = await self.client.generate(request, deadline=deadline)
        except GenerationClientError as e:
            logger.warning(f"Answer judge unavailable, marking answer incorrect: {str(e)}")
            return Evaluation(verdict=Verdict.INCONCLUSIVE, stored_response=stored_response, ideal_answer=reference)

        parsed, notes = parse_json_and_reasoning(result.text)
        if parsed is None:
            parsed, notes = parse_json_safe(result.text), ""
        if not parsed or not isinstance(parsed.get("is_correct"), bool):
            logger.warning(f"Answer judge returned unusable output: {truncate(result.text)}")
            return Evaluation(
                verdict=Verdict.INCONCLUSIVE,
                stored_response=stored_response,
                ideal_answer=reference,
                result=result,
            )

        suggested = clean_string(parsed.get("ideal_answer")) if isinstance(parsed.get("ideal_answer"), str) else None
        feedback = parsed.get("feedback")
        if not isinstance(feedback, str) or not feedback.strip():
            # Reasoning may trail the JSON object
            feedback = notes
        return Evaluation(
            verdict=Verdict.CORRECT if parsed["is_correct"] else Verdict.INCORRECT,
            stored_response=stored_response,
            ideal_answer=suggested or reference,
            feedback=clean_string(feedback) if isinstance(feedback, str) else None,
            suggested_answer=suggested,
            result=result,
        )


# Global instance
answer_evaluator = AnswerEvaluator()
