"""
Usage telemetry for generation calls
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_api.models import UsageRecord
from placement_api.services.api_cost import calculate_api_cost
from placement_api.services.generation_client import GenerationResult

logger = logging.getLogger(__name__)


def build_usage_record(
    user_id: Optional[str],
    endpoint: str,
    model: str,
    tokens_input: int,
    tokens_output: int,
    cached: bool,
    response_time_ms: int,
    request_id: Optional[str] = None
) -> UsageRecord:
    """Create an (unsaved) usage row with its derived cost"""
    return UsageRecord(
        user_id=user_id,
        endpoint=endpoint,
        model_used=model,
        request_id=request_id,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        cost_usd=calculate_api_cost(model, tokens_input, tokens_output, cached),
        response_time_ms=response_time_ms,
    )


def record_generation_usage(
    db: Session,
    user_id: Optional[str],
    endpoint: str,
    result: GenerationResult
) -> Optional[UsageRecord]:
    """
    Persist usage for a single call in its own commit

    Database errors are logged and rolled back; the caller never sees them.
    """
    record = build_usage_record(
        user_id=user_id,
        endpoint=endpoint,
        model=result.model,
        tokens_input=result.usage.tokens_input,
        tokens_output=result.usage.tokens_output,
        cached=result.usage.cached,
        response_time_ms=result.latency_ms,
        request_id=result.request_id,
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record usage for {endpoint}: {str(e)}")
        return None
    return record
