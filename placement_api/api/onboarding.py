"""
Onboarding API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from placement_api.api.dependencies import get_current_user_id
from placement_api.database import get_db
from placement_api.errors import ModerationRejected
from placement_api.schemas.onboarding import OnboardingAnswers, ModerationResponse, OnboardingSubmitResponse
from placement_api.schemas.placement import PlacementTestResponse
from placement_api.services.attempt_service import attempt_service
from placement_api.services.moderation_service import moderation_service
from placement_api.services.placement_test_service import placement_test_generator

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])
logger = logging.getLogger(__name__)


@router.post("/moderate", response_model=ModerationResponse)
async def moderate(answers: OnboardingAnswers, user_id: str = Depends(get_current_user_id)):
    """Check that the learner's goal is a usable educational goal"""
    result = await moderation_service.moderate(answers.goal, answers.experience)
    return ModerationResponse(approved=result.approved, message=result.message)


@router.post("/submit", response_model=OnboardingSubmitResponse, status_code=201)
async def submit(
    answers: OnboardingAnswers,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Complete onboarding

    - Moderates the answers (422 when rejected)
    - Generates and stores the placement test
    - Starts the learner's first attempt
    """
    result = await moderation_service.moderate(answers.goal, answers.experience)
    if not result.approved:
        logger.info(f"Onboarding answers rejected for user {user_id}")
        raise ModerationRejected(result.message)

    generated = await placement_test_generator.generate_and_store(
        db,
        user_id=user_id,
        goal=answers.goal,
        experience=answers.experience,
    )
    attempt = attempt_service.start_attempt(db, user_id=user_id, test_id=generated.test_id)

    return OnboardingSubmitResponse(
        attempt_id=attempt.id,
        test=PlacementTestResponse(**generated.__dict__),
    )
