"""Redaction helpers for log output.

Covers what this service handles in clear at some point: the merchant
signing key (``&key=`` tail of a canonical string), callback signatures and
attachments, WeChat OAuth codes/secrets/access tokens and bearer session
tokens.

Strings longer than MAX_LOGGED_CHARS are replaced by a length + digest
marker and never scanned; everything else goes through _SECRET_PARAMS.
"""

import hashlib
import re
import traceback
from typing import Any

REDACTED = "[REDACTED]"

MAX_LOGGED_CHARS: int = 2048
MAX_NESTING: int = 6

# Log field / payload keys whose values are never written (lower-cased)
SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "authorization", "token", "session_token",
    "key", "api_key", "secret", "app_secret",
    "sign", "signature", "attach",
    "code", "access_token", "refresh_token", "phone",
})

# name=value pairs inside query strings, canonical strings and messages
_SECRET_PARAMS = re.compile(
    r"(?P<name>(?<![A-Za-z_])(?:key|secret|sign|code|access_token|refresh_token))=[^&\s]+"
)
_AUTH_SCHEMES = re.compile(r"\b(?P<scheme>Bearer|Basic) \S+")


def payload_hash_bytes(raw: bytes) -> str:
    """sha256 hex digest of a raw request body."""
    return hashlib.sha256(raw).hexdigest()


def sanitize_str(s: str) -> str:
    """Redact credentials embedded in a string."""
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    if len(s) > MAX_LOGGED_CHARS:
        digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
        return f"[TRUNCATED len={len(s)} sha256={digest}]"

    s = _AUTH_SCHEMES.sub(lambda m: f"{m.group('scheme')} {REDACTED}", s)
    return _SECRET_PARAMS.sub(lambda m: f"{m.group('name')}={REDACTED}", s)


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Redact a log ``extra`` value, descending into dicts, lists and tuples."""
    if depth >= MAX_NESTING:
        return "[DEPTH_LIMIT]"

    if isinstance(obj, dict):
        return {
            key: REDACTED
            if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS
            else sanitize_obj(value, depth + 1)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]
    if isinstance(obj, str):
        return sanitize_str(obj)
    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Render an exc_info tuple as a redacted traceback (no frame locals)."""
    value = exc_info[1]
    if value is None:
        return ""
    lines = traceback.TracebackException.from_exception(value, capture_locals=False).format()
    return sanitize_str("".join(lines))


def mask_identifier(value: str | None, keep: int = 6) -> str:
    """Keep a short prefix of an opaque identifier (transaction ids, openids)."""
    if not value:
        return "unknown"
    if len(value) <= keep:
        return value
    return f"{value[:keep]}***"
