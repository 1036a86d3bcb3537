"""
Pydantic schemas for placement tests, attempts and answers
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Dict, Any, Optional

from placement_api.utils.text import sanitize_input, strip_control


class PlacementTestRequest(BaseModel):
    """Request schema for placement test generation"""
    goal: str = Field(..., min_length=1, max_length=2000, description="Learner's target level or qualification")
    experience: str = Field(..., min_length=1, max_length=2000, description="Learner's stated experience")

    @field_validator("goal", "experience")
    @classmethod
    def sanitize(cls, value: str) -> str:
        cleaned = sanitize_input(value)
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned


class QuestionOut(BaseModel):
    """Question as shown to the learner; no answer or explanation"""
    question_id: int
    order: int
    question: str
    type: str  # multiple_choice, text, scenario
    options: Optional[List[str]] = None
    concept: Optional[str] = None


class PlacementTestResponse(BaseModel):
    """Response containing a generated placement test"""
    test_id: int
    topic: str
    prerequisites: List[str] = []
    total_questions: int
    questions: List[QuestionOut]

    class Config:
        from_attributes = True


class AttemptResponse(BaseModel):
    """Attempt progress"""
    attempt_id: int
    test_id: int
    answered: int = 0
    total: int
    completed: bool


class AnswerSubmitRequest(BaseModel):
    """Schema for a single answer submission"""
    question_id: int
    response: Optional[str] = Field(None, max_length=5000)
    skip: bool = False

    @field_validator("response")
    @classmethod
    def sanitize_response(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else strip_control(value)

    @model_validator(mode="after")
    def require_response(self):
        if not self.skip and not self.response:
            raise ValueError("response is required unless skip is true")
        return self


class AnswerResult(BaseModel):
    """One question/answer pair of a completed attempt"""
    order: int
    question_id: int
    question: str
    concept: Optional[str] = None
    type: str
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    user_response: Optional[str] = None
    is_correct: bool
    skipped: bool
    feedback: Optional[str] = None


class PlanPdf(BaseModel):
    filename: str
    content_type: str
    base64: str


class PlanOut(BaseModel):
    """Synthesized learning plan with per-stage completion flags"""
    document: str
    framework_completed: bool
    structure_completed: bool
    content_completed: bool
    content_skipped: bool
    rendered: bool
    score: int
    level: str
    summary: str
    pdf: Optional[PlanPdf] = None
    artifact_path: Optional[str] = None


class AnswerSubmitResponse(BaseModel):
    """Response after an answer is graded and stored"""
    is_correct: bool
    verdict: str  # correct, incorrect, inconclusive
    completed: bool
    answered: int
    total: int
    ideal_answer: Optional[str] = None
    feedback: Optional[str] = None
    results: Optional[List[AnswerResult]] = None
    plan: Optional[PlanOut] = None


class PlanResponse(BaseModel):
    """Stored plan of a completed attempt"""
    attempt_id: int
    results: List[Dict[str, Any]]
    plan: PlanOut
