"""
Placement attempt lifecycle

open (completed = false) -> completed (terminal)

Answers are upserted on the (attempt_id, question_id) unique key, counts are
read fresh from storage on every call and the completion flip is a
conditional UPDATE, so only one request ever runs plan synthesis for an
attempt.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_api.config import settings
from placement_api.errors import Forbidden, NotFound, TypeMismatch
from placement_api.models import AnswerRecord, PlacementAttempt, PlacementQuestion, PlacementTest
from placement_api.services.answer_evaluator import (
    AnswerEvaluator,
    Evaluation,
    Verdict,
    answer_evaluator,
    grade_multiple_choice,
    skipped,
)
from placement_api.services.plan_synthesizer import PlanSynthesizer, plan_synthesizer
from placement_api.services.usage_service import record_generation_usage
from placement_api.utils.cache import PlanCache, plan_cache
from placement_api.utils.deadline import Deadline
from placement_api.utils.text import clean_string

logger = logging.getLogger(__name__)

UPSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass
class AnswerOutcome:
    is_correct: bool
    verdict: Verdict
    completed: bool
    answered: int
    total: int
    ideal_answer: Optional[str] = None
    feedback: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    plan: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["verdict"] = self.verdict.value
        return data


class AttemptService:
    """Answer intake, grading, persistence and completion for placement attempts"""

    JUDGE_ENDPOINT = "answer_judge"

    def __init__(
        self,
        evaluator: Optional[AnswerEvaluator] = None,
        synthesizer: Optional[PlanSynthesizer] = None,
        cache: Optional[PlanCache] = None
    ):
        self.evaluator = evaluator or answer_evaluator
        self.synthesizer = synthesizer or plan_synthesizer
        self.cache = cache if cache is not None else plan_cache

    def start_attempt(self, db: Session, *, user_id: str, test_id: int) -> PlacementAttempt:
        test = db.get(PlacementTest, test_id)
        if not test:
            raise NotFound(f"Test {test_id} not found")

        attempt = PlacementAttempt(user_id=user_id, test_id=test.id, completed=False)
        try:
            db.add(attempt)
            db.commit()
            db.refresh(attempt)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to start attempt on test {test_id}: {str(e)}")
            raise

        logger.info(f"Attempt {attempt.id} started on test {test_id} by user {user_id}")
        return attempt

    def get_progress(self, db: Session, *, user_id: str, attempt_id: int) -> Dict[str, Any]:
        attempt = self._load_attempt(db, user_id, attempt_id)
        return {
            "attempt_id": attempt.id,
            "test_id": attempt.test_id,
            "answered": self._count_answered(db, attempt.id),
            "total": self._count_questions(db, attempt.test_id),
            "completed": bool(attempt.completed),
        }

    def get_plan(self, db: Session, *, user_id: str, attempt_id: int) -> Dict[str, Any]:
        """Return the cached plan payload of a completed attempt"""
        attempt = self._load_attempt(db, user_id, attempt_id)
        if not attempt.completed:
            raise NotFound(f"Attempt {attempt_id} is not complete yet")

        payload = self.cache.get(PlanCache.plan_key(attempt.id))
        if not payload:
            raise NotFound(f"No stored plan for attempt {attempt_id}")
        return payload

    async def submit_answer(
        self,
        db: Session,
        *,
        user_id: str,
        attempt_id: int,
        question_id: int,
        response: Optional[str] = None,
        skip: bool = False,
        deadline: Optional[Deadline] = None
    ) -> AnswerOutcome:
        """
        Grade and store one answer, completing the attempt when every question is answered

        Raises:
            NotFound: attempt or question does not exist
            Forbidden: attempt belongs to another user
            TypeMismatch: question is not part of the attempt's test
        """
        deadline = deadline or Deadline.after(settings.ANSWER_DEADLINE_SECONDS)

        attempt = self._load_attempt(db, user_id, attempt_id)
        question = db.get(PlacementQuestion, question_id)
        if not question:
            raise NotFound(f"Question {question_id} not found")
        if question.test_id != attempt.test_id:
            raise TypeMismatch(f"Question {question_id} does not belong to test {attempt.test_id}")

        evaluation = await self._evaluate(question, response, skip, deadline)
        if evaluation.result is not None:
            record_generation_usage(db, user_id, self.JUDGE_ENDPOINT, evaluation.result)

        try:
            if evaluation.suggested_answer and not clean_string(question.correct_answer):
                self._backfill_reference(db, question.id, evaluation.suggested_answer)
            self._upsert_answer(db, attempt, question.id, user_id, evaluation)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store answer for attempt {attempt_id}, question {question_id}: {str(e)}")
            raise

        answered = self._count_answered(db, attempt.id)
        total = self._count_questions(db, attempt.test_id)

        just_completed = False
        if total > 0 and answered >= total:
            just_completed = self._mark_completed(db, attempt.id)

        outcome = AnswerOutcome(
            is_correct=evaluation.is_correct,
            verdict=evaluation.verdict,
            completed=just_completed or bool(attempt.completed),
            answered=answered,
            total=total,
            ideal_answer=evaluation.ideal_answer,
            feedback=evaluation.feedback,
        )

        if just_completed:
            logger.info(f"Attempt {attempt.id} completed ({answered}/{total}), synthesizing plan")
            outcome.results = self.collect_results(db, attempt)
            outcome.plan = await self._synthesize(db, attempt, outcome.results, deadline)

        return outcome

    def collect_results(self, db: Session, attempt: PlacementAttempt) -> List[Dict[str, Any]]:
        """Every question of the attempt's test with its answer (if any), in question order"""
        rows = db.execute(
            select(PlacementQuestion, AnswerRecord)
            .outerjoin(
                AnswerRecord,
                and_(AnswerRecord.question_id == PlacementQuestion.id, AnswerRecord.attempt_id == attempt.id)
            )
            .where(PlacementQuestion.test_id == attempt.test_id)
            .order_by(PlacementQuestion.id)
        ).all()

        results = []
        for order, (question, answer) in enumerate(rows, start=1):
            results.append({
                "order": order,
                "question_id": question.id,
                "question": question.question_text,
                "concept": question.concept_tag,
                "type": question.type,
                "options": question.options,
                "correct_answer": question.correct_answer or (answer.ideal_answer if answer else None),
                "user_response": answer.user_response if answer else None,
                "is_correct": bool(answer.is_correct) if answer else False,
                "skipped": answer is None or answer.user_response is None,
                "feedback": answer.evaluation_feedback if answer else None,
            })
        return results

    async def _evaluate(
        self,
        question: PlacementQuestion,
        response: Optional[str],
        skip: bool,
        deadline: Deadline
    ) -> Evaluation:
        if skip or response is None:
            return skipped()

        if question.type == "multiple_choice":
            return grade_multiple_choice(response, question.correct_answer)

        if not response.strip():
            return Evaluation(verdict=Verdict.INCORRECT, stored_response="")

        return await self.evaluator.evaluate_text_answer(
            question.question_text,
            question.correct_answer,
            question.explanation,
            response,
            deadline=deadline,
        )

    def _load_attempt(self, db: Session, user_id: str, attempt_id: int) -> PlacementAttempt:
        attempt = db.get(PlacementAttempt, attempt_id)
        if not attempt:
            raise NotFound(f"Attempt {attempt_id} not found")
        if attempt.user_id != user_id:
            raise Forbidden(f"Attempt {attempt_id} belongs to another user")
        return attempt

    def _upsert_answer(
        self,
        db: Session,
        attempt: PlacementAttempt,
        question_id: int,
        user_id: str,
        evaluation: Evaluation
    ) -> None:
        dialect = db.get_bind().dialect.name
        insert = UPSERT_BUILDERS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Answer upsert is not supported on {dialect}")

        stmt = insert(AnswerRecord.__table__).values(
            attempt_id=attempt.id,
            question_id=question_id,
            user_id=user_id,
            user_response=evaluation.stored_response,
            is_correct=evaluation.is_correct,
            ideal_answer=evaluation.ideal_answer,
            evaluation_feedback=evaluation.feedback,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id", "question_id"],
            set_={
                "user_response": stmt.excluded.user_response,
                "is_correct": stmt.excluded.is_correct,
                "ideal_answer": stmt.excluded.ideal_answer,
                "evaluation_feedback": stmt.excluded.evaluation_feedback,
                "updated_at": func.now(),
            },
        )
        db.execute(stmt)

    def _backfill_reference(self, db: Session, question_id: int, reference: str) -> None:
        """Store the judge's ideal answer, but only if no reference exists yet"""
        table = PlacementQuestion.__table__
        result = db.execute(
            update(table)
            .where(
                table.c.id == question_id,
                or_(table.c.correct_answer.is_(None), func.trim(table.c.correct_answer) == "")
            )
            .values(correct_answer=reference)
        )
        if result.rowcount:
            logger.info(f"Backfilled reference answer for question {question_id}")

    def _mark_completed(self, db: Session, attempt_id: int) -> bool:
        """Flip the attempt to completed; True only for the call that actually flipped it"""
        table = PlacementAttempt.__table__
        try:
            result = db.execute(
                update(table)
                .where(table.c.id == attempt_id, table.c.completed.is_(False))
                .values(completed=True, end_time=func.now())
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to complete attempt {attempt_id}: {str(e)}")
            raise
        return result.rowcount == 1

    async def _synthesize(
        self,
        db: Session,
        attempt: PlacementAttempt,
        results: List[Dict[str, Any]],
        deadline: Deadline
    ) -> Dict[str, Any]:
        test = db.get(PlacementTest, attempt.test_id)
        plan = await self.synthesizer.synthesize(
            db,
            user_id=attempt.user_id,
            goal=test.goal or test.topic or "",
            experience=test.experience_level or "",
            responses=results,
            deadline=deadline,
        )
        payload = plan.to_dict()
        self.cache.set(PlanCache.plan_key(attempt.id), {
            "attempt_id": attempt.id,
            "results": results,
            "plan": payload,
        })
        return payload

    @staticmethod
    def _count_answered(db: Session, attempt_id: int) -> int:
        return db.scalar(
            select(func.count()).select_from(AnswerRecord).where(AnswerRecord.attempt_id == attempt_id)
        ) or 0

    @staticmethod
    def _count_questions(db: Session, test_id: int) -> int:
        return db.scalar(
            select(func.count()).select_from(PlacementQuestion).where(PlacementQuestion.test_id == test_id)
        ) or 0


# Global instance
attempt_service = AttemptService()
