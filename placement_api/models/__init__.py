"""
Database models package
"""
from placement_api.models.placement_test import PlacementTest
from placement_api.models.placement_question import PlacementQuestion
from placement_api.models.placement_attempt import PlacementAttempt
from placement_api.models.answer_record import AnswerRecord
from placement_api.models.usage_record import UsageRecord

__all__ = ["PlacementTest", "PlacementQuestion", "PlacementAttempt", "AnswerRecord", "UsageRecord"]
