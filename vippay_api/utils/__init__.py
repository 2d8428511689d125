"""Utility functions and helpers."""

from vippay_api.utils.logging import JSONFormatter, configure_json_logging
from vippay_api.utils.sanitize import (
    mask_identifier,
    payload_hash_bytes,
    sanitize_obj,
    sanitize_str,
)

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "mask_identifier",
    "payload_hash_bytes",
    "sanitize_obj",
    "sanitize_str",
]
