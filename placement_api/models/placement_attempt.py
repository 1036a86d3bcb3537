"""
PlacementAttempt model - one learner's pass through a test
"""
from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, ForeignKey, false, func
from placement_api.database import Base


class PlacementAttempt(Base):
    """
    Attempts table - completed flips false -> true exactly once
    """
    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    completed = Column(Boolean, nullable=False, default=False, server_default=false())
    start_time = Column(TIMESTAMP, server_default=func.now())
    end_time = Column(TIMESTAMP)

    def __repr__(self):
        return f"<PlacementAttempt(id={self.id}, user_id={self.user_id}, completed={self.completed})>"
