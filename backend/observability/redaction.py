"""Redaction for log lines and audit details.

Bearer tokens, pairing JWTs, Mongo connection strings and secret-like
key/value pairs never reach log output.
"""
import re
from typing import Any, FrozenSet, Iterable, Tuple

SENSITIVE_KEYS: FrozenSet[str] = frozenset({
    "token", "jwt", "authorization", "secret", "jwt_secret", "password", "mongo_url",
})

_RULES: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]+", re.IGNORECASE), "Bearer [REDACTED]"),
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[REDACTED_JWT]"),
    (re.compile(r"mongodb(?:\+srv)?://[^\s\"']+"), "[REDACTED_MONGO_URI]"),
    (re.compile(r"((?:jwt_)?secret|password|token)([\s:=]+)[\"']?[^\s\"',}]{8,}[\"']?", re.IGNORECASE),
     r"\1\2[REDACTED]"),
)


def redact(text: str) -> str:
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)
    return text


def _redact_value(value: Any, keys: Iterable[str]) -> Any:
    if isinstance(value, dict):
        return redact_dict(value, keys)
    if isinstance(value, (list, tuple)):
        return [_redact_value(v, keys) for v in value]
    if isinstance(value, str):
        return redact(value)
    return value


def redact_dict(data: dict, sensitive_keys: Iterable[str] = SENSITIVE_KEYS) -> dict:
    """Copy of ``data`` with sensitive keys masked and string values scrubbed."""
    keys = frozenset(k.lower() for k in sensitive_keys)
    return {
        k: "[REDACTED]" if k.lower() in keys else _redact_value(v, keys)
        for k, v in data.items()
    }
