"""
Pydantic schemas for onboarding requests and responses
"""
from pydantic import BaseModel, Field, field_validator

from placement_api.schemas.placement import PlacementTestResponse
from placement_api.utils.text import sanitize_input


class OnboardingAnswers(BaseModel):
    """The learner's onboarding answers"""
    goal: str = Field(..., min_length=1, max_length=2000, description="What the learner wants to reach")
    experience: str = Field(..., min_length=1, max_length=2000, description="Where the learner is now")

    @field_validator("goal", "experience")
    @classmethod
    def sanitize(cls, value: str) -> str:
        cleaned = sanitize_input(value)
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned


class ModerationResponse(BaseModel):
    approved: bool
    message: str


class OnboardingSubmitResponse(BaseModel):
    """Generated test plus the learner's first attempt on it"""
    attempt_id: int
    test: PlacementTestResponse
