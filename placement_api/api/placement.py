"""
Placement test, attempt and answer API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from placement_api.api.dependencies import get_current_user_id
from placement_api.database import get_db
from placement_api.schemas.placement import (
    PlacementTestRequest,
    PlacementTestResponse,
    AttemptResponse,
    AnswerSubmitRequest,
    AnswerSubmitResponse,
    PlanResponse,
)
from placement_api.services.attempt_service import attempt_service
from placement_api.services.placement_test_service import placement_test_generator

router = APIRouter(prefix="/api/placement", tags=["placement"])
logger = logging.getLogger(__name__)


@router.post("/tests", response_model=PlacementTestResponse, status_code=201)
async def generate_test(
    request: PlacementTestRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Generate a placement test for the learner's goal and experience

    - Retries once with a strict JSON directive if the first response is unusable
    - Persists the test and its questions in generation order
    - Correct answers and explanations are never returned
    """
    logger.info(f"Generating placement test for user {user_id}")

    generated = await placement_test_generator.generate_and_store(
        db,
        user_id=user_id,
        goal=request.goal,
        experience=request.experience,
    )
    return PlacementTestResponse(**generated.__dict__)


@router.post("/tests/{test_id}/attempts", response_model=AttemptResponse, status_code=201)
async def start_attempt(
    test_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Start a new attempt on a placement test"""
    attempt = attempt_service.start_attempt(db, user_id=user_id, test_id=test_id)
    return AttemptResponse(**attempt_service.get_progress(db, user_id=user_id, attempt_id=attempt.id))


@router.get("/attempts/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(
    attempt_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Answered/total counts and completion state, read fresh from storage"""
    return AttemptResponse(**attempt_service.get_progress(db, user_id=user_id, attempt_id=attempt_id))


@router.post("/attempts/{attempt_id}/answers", response_model=AnswerSubmitResponse)
async def submit_answer(
    attempt_id: int,
    submission: AnswerSubmitRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Submit (or skip) one answer

    Grading strategy:
    - Multiple choice: option letter match
    - Text/scenario: judged by the generation model, incorrect if the judge fails

    The answer that completes the attempt also returns the per-question
    results and the synthesized learning plan.
    """
    outcome = await attempt_service.submit_answer(
        db,
        user_id=user_id,
        attempt_id=attempt_id,
        question_id=submission.question_id,
        response=submission.response,
        skip=submission.skip,
    )
    return AnswerSubmitResponse(**outcome.to_dict())


@router.get("/attempts/{attempt_id}/plan", response_model=PlanResponse)
async def get_plan(
    attempt_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Learning plan of a completed attempt"""
    return PlanResponse(**attempt_service.get_plan(db, user_id=user_id, attempt_id=attempt_id))
