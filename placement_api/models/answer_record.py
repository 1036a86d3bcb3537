"""
AnswerRecord model - at most one row per (attempt, question)
"""
from sqlalchemy import Column, Integer, String, Boolean, Text, TIMESTAMP, ForeignKey, UniqueConstraint, func
from placement_api.database import Base, ANSWER_UNIQUE_INDEX


class AnswerRecord(Base):
    """
    Answer records table - the unique pair is what keeps answered-count honest
    """
    __tablename__ = "answer_records"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name=ANSWER_UNIQUE_INDEX),
    )

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), nullable=False)
    user_response = Column(Text)  # NULL means skipped
    is_correct = Column(Boolean, nullable=False)
    ideal_answer = Column(Text)
    evaluation_feedback = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<AnswerRecord(attempt_id={self.attempt_id}, question_id={self.question_id}, "
            f"is_correct={self.is_correct})>"
        )
