"""
Onboarding moderation - screens learner goals before a test is generated
"""
import logging
from dataclasses import dataclass
from typing import Optional

from placement_api.errors import GenerationClientError, ModerationUnavailable
from placement_api.services.generation_client import GenerationClient, GenerationRequest, generation_client
from placement_api.services.prompts import build_moderation_prompt
from placement_api.utils.deadline import Deadline
from placement_api.utils.parsers import parse_json_safe
from placement_api.utils.text import string_or, truncate

logger = logging.getLogger(__name__)

DEFAULT_REJECTION = "Please describe a clear educational goal so we can build your placement test."


@dataclass
class ModerationResult:
    approved: bool
    message: str


class ModerationService:

    def __init__(self, client: Optional[GenerationClient] = None):
        self.client = client or generation_client

    async def moderate(self, goal: str, experience: str, deadline: Optional[Deadline] = None) -> ModerationResult:
        """
        Review onboarding answers

        Unparseable verdicts are treated as rejections.

        Raises:
            ModerationUnavailable: the moderation call itself failed
        """
        request = GenerationRequest(
            messages=[{"role": "user", "content": build_moderation_prompt(goal, experience)}],
            temperature=0.0,
            max_output_tokens=200,
            json_mode=True,
        )
        try:
            result = await self.client.generate(request, deadline=deadline)
        except GenerationClientError as e:
            logger.error(f"Moderation request failed: {str(e)}")
            raise ModerationUnavailable("Moderation is temporarily unavailable, please try again") from e

        parsed = parse_json_safe(result.text)
        if not parsed or not isinstance(parsed.get("approved"), bool):
            logger.warning(f"Moderation returned unusable output: {truncate(result.text)}")
            return ModerationResult(approved=False, message=DEFAULT_REJECTION)

        approved = parsed["approved"]
        message = string_or(parsed.get("message"), "Approved" if approved else DEFAULT_REJECTION)
        logger.info(f"Moderation decision: approved={approved}")
        return ModerationResult(approved=approved, message=message)


# Global instance
moderation_service = ModerationService()
