"""YunGouOS parameter signature (MD5, uppercase hex).

Canonical string:
  1. drop the ``sign`` field and every entry whose value is "" or None
  2. sort remaining keys (byte-wise lexicographic)
  3. join as key=value with "&"
  4. append "&key=<secret>"

Digest: MD5 over the UTF-8 canonical string, uppercase hexadecimal. The
algorithm must match the provider exactly, so it is not configurable.
"""

import hashlib
import hmac
from typing import Any, Mapping, Optional

SIGN_FIELD = "sign"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def canonical_string(params: Mapping[str, Any], secret: str) -> str:
    """Build the canonical string that is hashed for the signature."""
    kept = {
        k: v
        for k, v in params.items()
        if k != SIGN_FIELD and v is not None and v != ""
    }
    # Byte-wise ordering (not locale / unicode code point collation)
    ordered_keys = sorted(kept, key=lambda k: k.encode("utf-8"))
    joined = "&".join(f"{k}={_format_value(kept[k])}" for k in ordered_keys)
    return f"{joined}&key={secret}"


def compute_signature(params: Mapping[str, Any], secret: str) -> str:
    """Compute the provider signature for a parameter set.

    Args:
        params: Parameters to sign (any existing ``sign`` entry is ignored)
        secret: Shared signing secret (merchant API key)

    Returns:
        Uppercase hex MD5 digest
    """
    payload = canonical_string(params, secret).encode("utf-8")
    return hashlib.md5(payload).hexdigest().upper()


def verify_signature(
    params: Mapping[str, Any],
    provided_signature: Optional[str],
    secret: str,
) -> bool:
    """Recompute the signature and compare in constant time.

    A missing or non-string provided signature never verifies.
    """
    if not isinstance(provided_signature, str) or not provided_signature:
        return False
    expected = compute_signature(params, secret)
    return hmac.compare_digest(
        expected.encode("utf-8"),
        provided_signature.encode("utf-8"),
    )
