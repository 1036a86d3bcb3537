"""
PlacementQuestion model - questions in generation order
"""
from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, JSON, ForeignKey, CheckConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from placement_api.database import Base

QUESTION_TYPES = ("multiple_choice", "text", "scenario")


class PlacementQuestion(Base):
    """
    Questions table - correct_answer may be backfilled once by the answer judge
    """
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(
            "type IN ('multiple_choice', 'text', 'scenario')",
            name="ck_questions_type",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    concept_tag = Column(String(255))
    question_text = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="text")
    options = Column(JSON().with_variant(JSONB(), "postgresql"))  # multiple_choice only
    correct_answer = Column(Text)
    explanation = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<PlacementQuestion(id={self.id}, test_id={self.test_id}, type={self.type})>"
