"""
Parsing helpers for generation model output

Everything here is best-effort: functions return None / empty values instead
of raising, so callers decide how to degrade.
"""
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_ZERO_WIDTH = re.compile(r"[\ufeff\u200b]+")
_FIRST_OBJECT = re.compile(r"\{[\s\S]*\}")


def strip_code_fence(text: Optional[str]) -> str:
    """Remove a ```json ... ``` fence (if any) and zero-width characters"""
    if not text:
        return ""
    match = _FENCE.search(text)
    clean = match.group(1) if match else text
    return _ZERO_WIDTH.sub("", clean)


def parse_json_safe(raw_text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of model output.

    Handles code fences and leading/trailing notes by falling back to the
    outermost {...} block. Returns None when nothing parses to an object.
    """
    if not raw_text:
        return None

    stripped = strip_code_fence(raw_text.strip()).strip()
    if not stripped:
        return None

    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        match = _FIRST_OBJECT.search(stripped)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except (json.JSONDecodeError, ValueError):
            return None

    return parsed if isinstance(parsed, dict) else None


def parse_json_and_reasoning(raw_text: Optional[str]) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Split output of the form ``{...json...} trailing notes`` into (json, notes).

    Braces are balanced by depth so notes that contain braces don't end up in
    the JSON slice.
    """
    if not raw_text:
        return None, ""

    stripped = strip_code_fence(raw_text.strip()).strip()
    start = stripped.find("{")
    if start == -1:
        return None, stripped

    depth = 0
    end = -1
    for index in range(start, len(stripped)):
        char = stripped[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = index + 1
                break

    if end == -1:
        return None, stripped

    try:
        parsed = json.loads(stripped[start:end])
    except (json.JSONDecodeError, ValueError):
        return None, stripped

    if not isinstance(parsed, dict):
        return None, stripped
    return parsed, stripped[end:].strip()


class ResponseShape(str, Enum):
    """Known provider response layouts"""
    CANDIDATES = "candidates"  # Gemini generateContent
    CHAT_CHOICES = "chat_choices"  # OpenAI-compatible chat completions
    UNKNOWN = "unknown"


@dataclass
class ProviderResponse:
    """Provider-neutral view of a generation response"""
    shape: ResponseShape
    text: str
    tokens_input: int = 0
    tokens_output: int = 0
    cached: bool = False
    request_id: Optional[str] = None


def classify_response(payload: Any) -> ResponseShape:
    if not isinstance(payload, dict):
        return ResponseShape.UNKNOWN
    if isinstance(payload.get("candidates"), list):
        return ResponseShape.CANDIDATES
    if isinstance(payload.get("choices"), list):
        return ResponseShape.CHAT_CHOICES
    return ResponseShape.UNKNOWN


def parse_provider_response(payload: Any) -> ProviderResponse:
    """Dispatch on the response shape and pull out text and token usage"""
    shape = classify_response(payload)
    if shape is ResponseShape.CANDIDATES:
        return _parse_candidates(payload)
    if shape is ResponseShape.CHAT_CHOICES:
        return _parse_chat_choices(payload)
    logger.warning("Unrecognised provider response shape")
    return ProviderResponse(shape=shape, text="")


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_id(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int)) and value != "" else None


def _parse_candidates(payload: Dict[str, Any]) -> ProviderResponse:
    text = ""
    candidates = payload.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        candidate = candidates[0]
        content = candidate.get("content")
        parts = _as_dict(content).get("parts")
        if isinstance(parts, list):
            # Multi-part answers (e.g. with search grounding) are concatenated
            text = "".join(part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str))
        elif isinstance(content, str):
            text = content
        elif isinstance(candidate.get("text"), str):
            text = candidate["text"]
        elif isinstance(candidate.get("output"), str):
            text = candidate["output"]

    usage = _as_dict(payload.get("usage_metadata") or payload.get("usageMetadata"))
    cached_tokens = _first_int(usage, "cached_content_token_count", "cachedContentTokenCount")
    return ProviderResponse(
        shape=ResponseShape.CANDIDATES,
        text=text,
        tokens_input=_first_int(usage, "prompt_token_count", "promptTokenCount"),
        tokens_output=_first_int(usage, "candidates_token_count", "candidatesTokenCount"),
        cached=cached_tokens > 0,
        request_id=_as_id(payload.get("response_id") or payload.get("responseId")),
    )


def _parse_chat_choices(payload: Dict[str, Any]) -> ProviderResponse:
    text = ""
    choice = payload["choices"][0] if payload["choices"] else None
    if isinstance(choice, dict):
        if isinstance(choice.get("text"), str):
            text = choice["text"]
        elif isinstance(choice.get("message"), dict):
            text = _flatten_content(choice["message"].get("content"))
        elif isinstance(choice.get("message"), str):
            text = choice["message"]

    usage = _as_dict(payload.get("usage"))
    details = _as_dict(usage.get("prompt_tokens_details"))
    cached = bool(usage.get("prompt_tokens_cached")) or _first_int(details, "cached_tokens") > 0
    return ProviderResponse(
        shape=ResponseShape.CHAT_CHOICES,
        text=text,
        tokens_input=_first_int(usage, "prompt_tokens", "promptTokens"),
        tokens_output=_first_int(usage, "completion_tokens", "completionTokens"),
        cached=cached,
        request_id=_as_id(payload.get("id")),
    )


def _flatten_content(content: Any) -> str:
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(_flatten_content(item) for item in content)
    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        return "\n".join(_flatten_content(value) for value in content.values())
    return ""


def _first_int(mapping: Dict[str, Any], *keys: str) -> int:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
    return 0
