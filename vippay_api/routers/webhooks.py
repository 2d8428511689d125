"""Payment provider webhook (YunGouOS payment-success notification).

The provider retries until it receives the literal body "SUCCESS"; every
other outcome (bad signature, unknown order, store failure, misconfiguration)
answers "FAIL" with HTTP 200 and text/plain. Retries are safe: the
pending -> paid transition is idempotent.

Log hygiene: only the SHA-256 hash and size of the raw body are logged,
never its content (it carries the signature and the attachment).
"""

import json as _json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from vippay_api.billing.callback_handler import ACK_FAIL, handle_payment_callback
from vippay_api.billing.order_lifecycle import OrderLifecycle
from vippay_api.config.env import load_payment_config
from vippay_api.db.session import get_db
from vippay_api.errors import ConfigurationMissing
from vippay_api.observability.metrics import log_callback_rejected
from vippay_api.utils.sanitize import payload_hash_bytes

router = APIRouter(prefix="/api/payment", tags=["webhooks"])
logger = logging.getLogger(__name__)


async def _read_params(request: Request, raw_body: bytes) -> dict[str, Any]:
    """Decode form-encoded (default) or JSON callback parameters."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("application/json"):
        body = _json.loads(raw_body or b"{}")
        if not isinstance(body, dict):
            raise ValueError("JSON callback body must be an object")
        return body

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/callback", response_class=PlainTextResponse)
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
) -> PlainTextResponse:
    """YunGouOS payment callback → "SUCCESS" | "FAIL"."""
    # ── Step 0: Raw body ingestion ───────────────────────────────────────────
    raw_body: bytes = await request.body()
    payload_hash = payload_hash_bytes(raw_body)
    payload_size = len(raw_body)

    logger.info(
        "WEBHOOK_RECEIVED",
        extra={"provider": "yungou", "payload_hash": payload_hash, "payload_size": payload_size},
    )

    # ── Step 1: Parameter decoding ──────────────────────────────────────────
    # Malformed JSON or form bodies (Starlette raises HTTPException(400) for
    # broken multipart) must still answer the plain failure token.
    try:
        params = await _read_params(request, raw_body)
    except (StarletteHTTPException, Exception) as e:
        logger.warning(
            "WEBHOOK_INVALID_PAYLOAD",
            extra={
                "provider": "yungou",
                "payload_hash": payload_hash,
                "error_type": type(e).__name__,
            },
        )
        log_callback_rejected(reason="invalid_payload")
        return PlainTextResponse(ACK_FAIL)

    # ── Step 2: Configuration (misconfig → FAIL, provider retries later) ────
    try:
        config = load_payment_config()
    except ConfigurationMissing as e:
        logger.error(
            "WEBHOOK_PROVIDER_MISCONFIG",
            extra={"provider": "yungou", "payload_hash": payload_hash, "missing": e.missing},
        )
        log_callback_rejected(reason="configuration_missing")
        return PlainTextResponse(ACK_FAIL)

    # ── Step 3: Lifecycle (never raises) ────────────────────────────────────
    ack = handle_payment_callback(params, OrderLifecycle(db, config))

    logger.info(
        "WEBHOOK_ACK",
        extra={"provider": "yungou", "payload_hash": payload_hash, "ack": ack},
    )
    return PlainTextResponse(ack)
