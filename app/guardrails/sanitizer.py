"""Input sanitization for text headed to the AI provider or the store, plus a prompt-injection heuristic."""
import re
from typing import Any, Tuple

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_MAX_CHARS = 10000
DEFAULT_AI_MAX_CHARS = 50000

INJECTION_PATTERNS = [
    "ignore previous instructions",
    "ignore all previous instructions",
    "system prompt",
    "developer message",
    "you are chatgpt",
    "exfiltrate",
    "api key",
]


def sanitize_input(value: Any, max_length: int = DEFAULT_MAX_CHARS) -> str:
    """Trim, drop control characters, collapse all whitespace to single spaces, and cap length. Non-strings become ''."""
    if not isinstance(value, str) or not value:
        return ""
    text = _CONTROL_CHARS_RE.sub("", value.strip())
    text = _WHITESPACE_RE.sub(" ", text)
    return text[:max_length].strip()


def sanitize_for_ai(value: Any, max_length: int = DEFAULT_AI_MAX_CHARS) -> str:
    """Like sanitize_input but keeps newlines and spacing; only control characters are removed."""
    if not isinstance(value, str) or not value:
        return ""
    text = _CONTROL_CHARS_RE.sub("", value.strip())
    return text[:max_length].strip()


def sanitize_payload(payload: Any, max_length: int = DEFAULT_AI_MAX_CHARS) -> Any:
    """Apply sanitize_for_ai to every string in a JSON-like payload (dict keys included), preserving structure and order.
    Why available: Job payloads are stored and sent to the model verbatim, so they are cleaned once at the endpoint."""
    if isinstance(payload, str):
        return sanitize_for_ai(payload, max_length)
    if isinstance(payload, dict):
        return {
            sanitize_input(str(k), 200): sanitize_payload(v, max_length)
            for k, v in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [sanitize_payload(v, max_length) for v in payload]
    return payload


def detect_prompt_injection(text: str) -> Tuple[bool, str]:
    """Lightweight heuristic detector: returns (True, pattern) if text contains typical injection phrasing (e.g. 'ignore previous instructions').
    Why available: The generator wraps flagged user text in an explicit untrusted-input note instead of rejecting the request."""
    t = (text or "").lower()
    for p in INJECTION_PATTERNS:
        if p in t:
            return True, p
    return False, ""
