"""Utility modules for the fitness tracker client."""

from .log_sanitizer import sanitize_log, sanitize_for_log, redact_payload

__all__ = ["sanitize_log", "sanitize_for_log", "redact_payload"]
