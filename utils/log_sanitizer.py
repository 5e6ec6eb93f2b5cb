"""Log sanitizer - keeps credentials and e-mail addresses out of log files.

Sign-in flows and store requests carry passwords, API keys and session tokens;
every record from the shared logger passes through sanitize_log first, and
request payloads go through redact_payload before they are formatted.
"""

import json
import re
from typing import Any, Union

# Keys whose values never reach a log line
SENSITIVE_KEYS = frozenset({
    "password", "refresh_token", "access_token", "api_key", "apikey", "secret", "authorization",
})

REDACTED = "[REDACTED]"

# (pattern, replacement) applied in order
SENSITIVE_PATTERNS = [
    # JWT access tokens (three base64 segments separated by dots)
    (r'eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+', '[JWT_TOKEN]'),

    # Bearer headers
    (r'(Bearer)\s+[A-Za-z0-9\-_\.]+', rf'\1 {REDACTED}'),

    # Session fields and secrets in key=value / JSON form
    (r'(password|refresh_token|access_token|api_key|apikey|secret)(["\']?\s*[:=]\s*["\']?)[^\s,}"\']+',
     rf'\1\2{REDACTED}'),

    # E-mail addresses
    (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]'),

    # Opaque refresh tokens and keys (long unbroken alphanumerics)
    (r'\b[A-Za-z0-9]{40,}\b', '[LONG_TOKEN]'),
]

_RULES = [(re.compile(pattern, re.IGNORECASE), replacement) for pattern, replacement in SENSITIVE_PATTERNS]


def sanitize_log(text: str) -> str:
    """Replace tokens, secrets and e-mail addresses in ``text`` with placeholders."""
    if not text:
        return text

    for rule, replacement in _RULES:
        text = rule.sub(replacement, text)
    return text


def redact_payload(data: Any) -> Any:
    """Copy of a JSON-like payload with sensitive keys masked, at any depth."""
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else redact_payload(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_payload(item) for item in data]
    return data


def sanitize_for_log(value: Union[str, bytes, dict, list, None], max_length: int = 200) -> str:
    """Sanitized, length-limited rendering of a response body or payload."""
    if value is None:
        return "<None>"

    if isinstance(value, (dict, list)):
        raw = json.dumps(redact_payload(value), ensure_ascii=False, default=str)
    elif isinstance(value, bytes):
        raw = value.decode("utf-8", errors="replace")
    else:
        raw = str(value)

    cleaned = sanitize_log(raw)
    if len(cleaned) <= max_length:
        return cleaned
    return f"{cleaned[:max_length]}... [{len(raw)} chars total]"
