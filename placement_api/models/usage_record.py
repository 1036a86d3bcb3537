"""
UsageRecord model - append-only billing telemetry for generation calls
"""
from sqlalchemy import Column, Integer, String, TIMESTAMP, DECIMAL, func
from placement_api.database import Base


class UsageRecord(Base):
    """
    Usage records table - written by the calling component, never read by the pipeline
    """
    __tablename__ = "usage_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), index=True)
    endpoint = Column(String(100))
    model_used = Column(String(100))
    request_id = Column(String(255))
    tokens_input = Column(Integer, default=0)
    tokens_output = Column(Integer, default=0)
    cost_usd = Column(DECIMAL(10, 5))
    response_time_ms = Column(Integer)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<UsageRecord(endpoint={self.endpoint}, model={self.model_used}, cost={self.cost_usd})>"
