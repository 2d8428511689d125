"""Attachment codec: correlation data round-tripped through the provider.

The provider stores ``attach`` opaquely and echoes it verbatim in the
payment callback.
"""

import json
from dataclasses import dataclass

from vippay_api.errors import MalformedAttachment


@dataclass(frozen=True)
class Attachment:
    """Decoded attachment fields used by the callback."""

    user_id: str
    product_type: str


def encode_attachment(user_id: str, product_type: str) -> str:
    """Serialize the attachment as a compact JSON object."""
    return json.dumps(
        {"userId": user_id, "productType": product_type},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def decode_attachment(raw: str | None) -> Attachment:
    """Parse an attachment string. Extra fields are ignored.

    Raises:
        MalformedAttachment: If raw is not a JSON object or a required
            field is missing / not a non-empty string
    """
    if not raw:
        raise MalformedAttachment("Attachment is empty")

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedAttachment("Attachment is not valid JSON") from e

    if not isinstance(data, dict):
        raise MalformedAttachment("Attachment must be a JSON object")

    user_id = data.get("userId")
    product_type = data.get("productType")
    missing = [
        name
        for name, value in (("userId", user_id), ("productType", product_type))
        if not isinstance(value, str) or not value
    ]
    if missing:
        raise MalformedAttachment(f"Attachment missing fields: {', '.join(missing)}")

    return Attachment(user_id=user_id, product_type=product_type)
