"""
Small text helpers shared by services and schemas
"""
import re
from typing import Any, Optional

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F]")
_UNSAFE_CHARS = re.compile(r"[<>`$]")
_LAYOUT_SAFE_CONTROL_CHARS = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F]")


def sanitize_input(value: Any) -> str:
    """Strip control characters and markup/template characters from learner input"""
    if value is None:
        return ""
    cleaned = _CONTROL_CHARS.sub("", str(value))
    return _UNSAFE_CHARS.sub("", cleaned).strip()


def strip_control(value: Any) -> str:
    """
    Trim and drop control characters, keeping tabs and line breaks

    For assessment content and answers, where `<`, `>` and `$` carry meaning.
    """
    if value is None:
        return ""
    return _LAYOUT_SAFE_CONTROL_CHARS.sub("", str(value)).strip()


def clean_string(value: Any) -> Optional[str]:
    """Trim a possibly-missing string, turning empty results into None"""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def string_or(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def truncate(text: Optional[str], limit: int = 220) -> str:
    """Collapse whitespace and cut long model output for log lines"""
    if not text:
        return ""
    normalized = re.sub(r"\s+", " ", text).strip()
    return normalized if len(normalized) <= limit else f"{normalized[:limit]}..."
