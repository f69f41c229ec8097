"""Utility functions for logging and auditing."""

import hashlib
import json
import re
from typing import Any, Dict

SENSITIVE_KEYS = {
    'api_key', 'key', 'secret', 'password', 'token',
    'authorization', 'auth', 'credential'
}


def redact_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive information from log data.

    Nested mappings are redacted recursively, and so are mappings found
    inside lists.

    Args:
        data: Dictionary containing log data

    Returns:
        Dictionary with sensitive data redacted
    """
    def _redact_value(key: str, value: Any) -> Any:
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            if isinstance(value, str):
                if len(value) > 8:
                    return f"{value[:4]}...{value[-4:]}"
                return "****"
            return "[REDACTED]"
        return value

    def _redact_item(value: Any) -> Any:
        if isinstance(value, dict):
            return redact_sensitive_data(value)
        if isinstance(value, list):
            return [_redact_item(item) for item in value]
        return value

    if not isinstance(data, dict):
        return data

    return {
        k: _redact_value(k, v) if isinstance(v, (str, int, float, bool))
        else _redact_item(v)
        for k, v in data.items()
    }


def sanitize_log_message(message: str) -> str:
    """Remove sensitive patterns from log messages.

    Args:
        message: Log message to sanitize

    Returns:
        Sanitized message
    """
    patterns = [
        (r'key=[\w\-]+', 'key=****'),  # API keys
        (r'Bearer\s+[\w\-\.]+', 'Bearer ****'),  # Bearer tokens
        (r'password=[\w\-]+', 'password=****'),  # Passwords
        (r'token=[\w\-\.]+', 'token=****'),  # Tokens
        (r'secret=[\w\-]+', 'secret=****'),  # Secrets
        (r'sk-[A-Za-z0-9\-_]{8,}', 'sk-****'),  # Provider secret keys
        (r'AIza[0-9A-Za-z\-_]{20,}', 'AIza****'),  # Google API keys
        (r'x-api-key:\s*[\w\-]+', 'x-api-key: ****'),  # Anthropic key header
    ]

    result = message
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result)

    return result


def hash_args(args: Any) -> str:
    """Return a short stable fingerprint of tool arguments.

    Args:
        args: Tool arguments, normally a mapping

    Returns:
        First 16 hex characters of the SHA-256 of the canonical JSON form
    """
    try:
        canonical = json.dumps(args, sort_keys=True, default=str)
    except (TypeError, ValueError):
        canonical = repr(args)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
