"""Utility helpers for bibble."""

from bibble.utils.log_utils import hash_args, redact_sensitive_data, sanitize_log_message

__all__ = ["hash_args", "redact_sensitive_data", "sanitize_log_message"]
