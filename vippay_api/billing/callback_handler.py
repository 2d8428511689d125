"""Payment callback boundary.

Maps every lifecycle result to the provider's acknowledgement token:
Acknowledged → "SUCCESS"; Rejected or any error → "FAIL". The provider
retries on anything but "SUCCESS", so this function never raises.
"""

import logging
from typing import Any, Mapping

from vippay_api.billing.order_lifecycle import OrderLifecycle
from vippay_api.errors import StoreUnavailable
from vippay_api.observability.metrics import log_callback_rejected
from vippay_api.utils.sanitize import sanitize_str

logger = logging.getLogger(__name__)

ACK_SUCCESS = "SUCCESS"
ACK_FAIL = "FAIL"


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def handle_payment_callback(params: Mapping[str, Any], lifecycle: OrderLifecycle) -> str:
    """Process a decoded callback parameter map and return the ack token."""
    out_trade_no = _str_or_none(params.get("out_trade_no"))
    try:
        result = lifecycle.handle_callback(
            raw_params=params,
            provided_signature=_str_or_none(params.get("sign")),
            attachment_raw=_str_or_none(params.get("attach")),
            merchant_order_number=out_trade_no,
            transaction_id=_str_or_none(params.get("transaction_id")),
        )
    except StoreUnavailable as e:
        logger.error(
            "callback.store_unavailable",
            extra={
                "event": "callback.store_unavailable",
                "out_trade_no": out_trade_no,
                "error": sanitize_str(e.detail),
            },
        )
        log_callback_rejected(reason="store_unavailable", out_trade_no=out_trade_no)
        return ACK_FAIL
    except Exception as e:
        logger.error(
            "callback.internal_error",
            extra={
                "event": "callback.internal_error",
                "out_trade_no": out_trade_no,
                "error_type": type(e).__name__,
                "error": sanitize_str(str(e)),
            },
            exc_info=True,
        )
        log_callback_rejected(reason="internal_error", out_trade_no=out_trade_no)
        return ACK_FAIL

    return ACK_SUCCESS if result.acknowledged else ACK_FAIL
