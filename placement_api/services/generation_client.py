"""
Gemini generation client shared by test generation, judging and plan synthesis
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from placement_api.config import settings
from placement_api.errors import GenerationClientError, GenerationTimeout
from placement_api.utils.deadline import Deadline
from placement_api.utils.parsers import parse_provider_response

logger = logging.getLogger(__name__)

# Configure Gemini API
genai.configure(api_key=settings.GEMINI_API_KEY)

NON_RETRYABLE_ERRORS = (
    google_exceptions.Unauthenticated,
    google_exceptions.PermissionDenied,
    google_exceptions.NotFound,
    google_exceptions.InvalidArgument,
)
NON_RETRYABLE_MARKERS = ("unauthorized", "forbidden", "not found", "api key not valid")

ROLE_MAP = {"user": "user", "assistant": "model", "model": "model"}


@dataclass
class GenerationRequest:
    """Provider-neutral request; messages are {"role", "content"} dicts"""
    messages: List[Dict[str, str]]
    temperature: float = 0.3
    max_output_tokens: int = 2048
    json_mode: bool = False
    web_search: bool = False


@dataclass
class GenerationUsage:
    tokens_input: int = 0
    tokens_output: int = 0
    cached: bool = False


@dataclass
class GenerationResult:
    text: str
    model: str
    usage: GenerationUsage = field(default_factory=GenerationUsage)
    request_id: Optional[str] = None
    latency_ms: int = 0


def is_retryable(exc: BaseException) -> bool:
    """Transient and network-shaped failures are retried; auth/lookup/validation ones are not"""
    if not isinstance(exc, Exception):
        return False
    if isinstance(exc, GenerationTimeout):
        return False
    if isinstance(exc, NON_RETRYABLE_ERRORS):
        return False
    message = str(exc).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


class GenerationClient:
    """
    Thin request/response wrapper around a Gemini model

    Every call is retried with exponential backoff (bounded attempts, capped
    delay) and bounded by the caller's Deadline.
    """

    def __init__(
        self,
        model: str,
        *,
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        call_timeout: Optional[float] = None,
    ):
        self.model = model
        self.max_attempts = max_attempts if max_attempts is not None else settings.RETRY_ATTEMPTS
        self.initial_delay = initial_delay if initial_delay is not None else settings.RETRY_INITIAL_DELAY
        self.max_delay = max_delay if max_delay is not None else settings.RETRY_MAX_DELAY
        self.call_timeout = call_timeout if call_timeout is not None else settings.GENERATION_CALL_TIMEOUT_SECONDS

    async def generate(
        self,
        request: GenerationRequest,
        *,
        deadline: Optional[Deadline] = None
    ) -> GenerationResult:
        """
        Issue a generation request

        Raises:
            GenerationTimeout: deadline expired before or during the call
            GenerationClientError: the call failed after retries
        """
        deadline = deadline or Deadline.never()
        if deadline.expired:
            raise GenerationTimeout(f"{self.model}: deadline expired before request")

        started = time.monotonic()
        try:
            payload = await asyncio.wait_for(
                self._generate_with_retry(request, deadline),
                timeout=deadline.remaining()
            )
            parsed = parse_provider_response(payload)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(f"{self.model}: deadline expired during request") from exc
        except GenerationClientError:
            raise
        except Exception as exc:
            raise GenerationClientError(f"{self.model} request failed: {exc}") from exc

        return GenerationResult(
            text=parsed.text,
            model=self.model,
            usage=GenerationUsage(
                tokens_input=parsed.tokens_input,
                tokens_output=parsed.tokens_output,
                cached=parsed.cached,
            ),
            request_id=parsed.request_id,
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    async def _generate_with_retry(self, request: GenerationRequest, deadline: Deadline) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_delay, max=self.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                payload = await self._call(request, deadline)
        return payload

    async def _call(self, request: GenerationRequest, deadline: Deadline) -> Dict[str, Any]:
        """Single provider round trip, returning the raw response as a dict"""
        system_instruction, contents = self._to_contents(request.messages)

        model = genai.GenerativeModel(self.model, system_instruction=system_instruction)

        generation_config: Dict[str, Any] = {
            "temperature": request.temperature,
            "max_output_tokens": request.max_output_tokens,
        }
        if request.json_mode:
            generation_config["response_mime_type"] = "application/json"

        extra: Dict[str, Any] = {}
        if request.web_search and settings.ENABLE_WEB_SEARCH:
            extra["tools"] = "google_search_retrieval"

        timeout = self.call_timeout
        remaining = deadline.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        response = await model.generate_content_async(
            contents,
            generation_config=generation_config,
            request_options={"timeout": timeout},
            **extra
        )
        return response.to_dict()

    @staticmethod
    def _to_contents(messages: List[Dict[str, str]]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Split system messages out and map the rest onto Gemini content turns"""
        system_parts = []
        contents = []
        for message in messages:
            role = message.get("role", "user")
            text = message.get("content", "")
            if role == "system":
                system_parts.append(text)
                continue
            contents.append({"role": ROLE_MAP.get(role, "user"), "parts": [{"text": text}]})
        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents


# Global instances
generation_client = GenerationClient(settings.GENERATION_MODEL)
synthesis_client = GenerationClient(settings.SYNTHESIS_MODEL)
