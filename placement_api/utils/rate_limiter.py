"""
Rate limiting middleware for API endpoints
"""
import logging
import time
from collections import defaultdict
from typing import Dict

from fastapi import HTTPException, Request

from placement_api.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    In-memory rate limiter keyed by learner (X-User-Id) or client IP

    Generation endpoints draw from an additional, much smaller hourly budget
    because each call costs a full model round trip.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        generations_per_hour: int = 20
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.generations_per_hour = generations_per_hour

        # Storage: {client_id: [(timestamp, count)]}
        self.minute_tracker: Dict[str, list] = defaultdict(list)
        self.hour_tracker: Dict[str, list] = defaultdict(list)
        self.generation_tracker: Dict[str, list] = defaultdict(list)

    def _get_client_id(self, request: Request) -> str:
        """Extract client identifier from request"""
        user_id = request.headers.get("x-user-id")
        if user_id:
            return f"user:{user_id}"

        # Fallback to IP address
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _cleanup_old_entries(self, tracker: Dict[str, list], window_seconds: int):
        """Remove entries older than window"""
        cutoff_time = time.time() - window_seconds

        for client_id in list(tracker.keys()):
            tracker[client_id] = [
                (ts, count) for ts, count in tracker[client_id]
                if ts > cutoff_time
            ]

            # Remove empty entries
            if not tracker[client_id]:
                del tracker[client_id]

    def _reject(self, client_id: str, window: str, limit: int, retry_after: int, kind: str = "requests"):
        logger.warning(f"Rate limit exceeded ({kind}/{window}): {client_id}")
        raise HTTPException(
            status_code=429,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Too many {kind}. Limit: {limit} {kind} per {window}",
                "retry_after": retry_after
            }
        )

    async def check_rate_limit(self, request: Request, generation: bool = False) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        current_time = time.time()

        self._cleanup_old_entries(self.minute_tracker, 60)
        self._cleanup_old_entries(self.hour_tracker, 3600)
        self._cleanup_old_entries(self.generation_tracker, 3600)

        minute_requests = sum(count for _, count in self.minute_tracker[client_id])
        if minute_requests >= self.requests_per_minute:
            self._reject(client_id, "minute", self.requests_per_minute, 60)

        hour_requests = sum(count for _, count in self.hour_tracker[client_id])
        if hour_requests >= self.requests_per_hour:
            self._reject(client_id, "hour", self.requests_per_hour, 3600)

        if generation:
            generations = sum(count for _, count in self.generation_tracker[client_id])
            if generations >= self.generations_per_hour:
                self._reject(client_id, "hour", self.generations_per_hour, 3600, kind="generations")
            self.generation_tracker[client_id].append((current_time, 1))

        # Record this request
        self.minute_tracker[client_id].append((current_time, 1))
        self.hour_tracker[client_id].append((current_time, 1))

        logger.debug(f"Rate limit check passed: {client_id} (minute: {minute_requests+1}, hour: {hour_requests+1})")

    def reset(self) -> None:
        self.minute_tracker.clear()
        self.hour_tracker.clear()
        self.generation_tracker.clear()


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
    generations_per_hour=settings.GENERATION_RATE_LIMIT_PER_HOUR
)
