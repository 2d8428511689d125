"""YunGouOS WeChat App Pay client (order creation).

API Reference:
- App Pay: https://api.pay.yungouos.com/api/pay/wxpay/appPay
- Response envelope: {"code": 0, "msg": "...", "data": {...}}; code == 0 is success

The request is authenticated with the shared secret through the ``sign``
field (see billing.signature); the secret itself is never sent.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from vippay_api.billing.signature import compute_signature
from vippay_api.config.env import PaymentConfig
from vippay_api.errors import UpstreamOrderCreationFailed
from vippay_api.utils.sanitize import sanitize_str

logger = logging.getLogger(__name__)

# Provider data fields → client-facing payment-initiation parameter names
PAY_PARAM_FIELDS: dict[str, str] = {
    "appid": "appId",
    "partnerid": "partnerId",
    "prepay_id": "prepayId",
    "package": "package",
    "noncestr": "nonceStr",
    "timestamp": "timeStamp",
    "sign": "sign",
}


@dataclass(frozen=True)
class AppPayOrder:
    """Successful provider response for an App Pay order."""

    provider_order_id: Optional[str]
    pay_params: dict[str, Any]


class YunGouPayClient:
    """YunGouOS App Pay API client.

    Args:
        config: Payment configuration (merchant id, secret, notify URL)
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        config: PaymentConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.transport = transport

    def build_request(
        self,
        *,
        out_trade_no: str,
        total_fee: int,
        body: str,
        attach: str,
    ) -> dict[str, Any]:
        """Build the signed App Pay request payload."""
        payload: dict[str, Any] = {
            "mch_id": self.config.mch_id,
            "out_trade_no": out_trade_no,
            "total_fee": total_fee,
            "body": body,
            "notify_url": self.config.notify_url,
            "attach": attach,
        }
        payload["sign"] = compute_signature(payload, self.config.api_key)
        return payload

    async def create_app_pay_order(
        self,
        *,
        out_trade_no: str,
        total_fee: int,
        body: str,
        attach: str,
    ) -> AppPayOrder:
        """Create an App Pay order with the provider.

        Args:
            out_trade_no: Merchant order number
            total_fee: Amount in minor units (fen)
            body: Order description shown to the payer
            attach: Opaque attachment echoed back in the callback

        Returns:
            AppPayOrder with the provider order id and payment parameters

        Raises:
            UpstreamOrderCreationFailed: On transport error, HTTP error,
                non-JSON body or a non-zero response code
        """
        payload = self.build_request(
            out_trade_no=out_trade_no,
            total_fee=total_fee,
            body=body,
            attach=attach,
        )

        logger.info(
            "yungou.app_pay.request",
            extra={
                "event": "yungou.app_pay.request",
                "out_trade_no": out_trade_no,
                "total_fee": total_fee,
            },
        )

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self.config.app_pay_url,
                    json=payload,
                    timeout=self.config.timeout_sec,
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "yungou.app_pay.http_error",
                extra={
                    "event": "yungou.app_pay.http_error",
                    "out_trade_no": out_trade_no,
                    "status_code": e.response.status_code,
                },
            )
            raise UpstreamOrderCreationFailed(
                f"Payment provider returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "yungou.app_pay.request_error",
                extra={
                    "event": "yungou.app_pay.request_error",
                    "out_trade_no": out_trade_no,
                    "error_type": type(e).__name__,
                },
            )
            raise UpstreamOrderCreationFailed("Payment provider unreachable") from e
        except ValueError as e:
            raise UpstreamOrderCreationFailed("Payment provider returned invalid JSON") from e

        if not isinstance(result, dict) or result.get("code") != 0:
            msg = result.get("msg") if isinstance(result, dict) else None
            logger.warning(
                "yungou.app_pay.rejected",
                extra={
                    "event": "yungou.app_pay.rejected",
                    "out_trade_no": out_trade_no,
                    "provider_code": result.get("code") if isinstance(result, dict) else None,
                    "provider_msg": sanitize_str(str(msg)) if msg else None,
                },
            )
            raise UpstreamOrderCreationFailed(
                f"Payment provider rejected order: {msg or 'unknown error'}"
            )

        data = result.get("data") or {}
        if not isinstance(data, dict):
            raise UpstreamOrderCreationFailed("Payment provider returned no payment data")

        pay_params = {
            client_name: data.get(provider_name)
            for provider_name, client_name in PAY_PARAM_FIELDS.items()
        }

        logger.info(
            "yungou.app_pay.created",
            extra={
                "event": "yungou.app_pay.created",
                "out_trade_no": out_trade_no,
                "provider_order_id": data.get("order_id"),
            },
        )
        return AppPayOrder(provider_order_id=data.get("order_id"), pay_params=pay_params)
