"""WeChat Open Platform OAuth client (authorization-code exchange).

API Reference:
- Code exchange: GET https://api.weixin.qq.com/sns/oauth2/access_token
- User profile: GET https://api.weixin.qq.com/sns/userinfo
- Errors are returned as HTTP 200 with {"errcode": ..., "errmsg": ...}

Service error codes (stable, returned to the client):
  40001 → missing authorization code (400)
  40002 → WeChat credentials not configured (503)
  40003 → WeChat call failed (502), message mapped from the errcode table
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from vippay_api.config.env import WeChatConfig, load_wechat_config
from vippay_api.errors import ConfigurationMissing, VipPayError
from vippay_api.utils.sanitize import mask_identifier

logger = logging.getLogger(__name__)

WECHAT_ACCESS_TOKEN_URL = "https://api.weixin.qq.com/sns/oauth2/access_token"
WECHAT_USERINFO_URL = "https://api.weixin.qq.com/sns/userinfo"
DEFAULT_EXPIRES_IN = 7200

WECHAT_CODE_MISSING = 40001
WECHAT_NOT_CONFIGURED = 40002
WECHAT_CALL_FAILED = 40003

WECHAT_ERROR_MESSAGES: dict[int, str] = {
    -1: "WeChat system busy, please retry later",
    40001: "Invalid AppSecret when requesting access_token",
    40002: "Invalid grant type",
    40003: "Invalid OpenID",
    40029: "Invalid code, or code already used",
    40030: "Invalid refresh_token",
    40163: "Code already used",
    41001: "Missing access_token parameter",
    41002: "Missing appid parameter",
    41003: "Missing refresh_token parameter",
    41004: "Missing secret parameter",
    42001: "access_token expired",
    42002: "refresh_token expired",
    42003: "Code expired",
    45009: "API call limit exceeded",
    50001: "User has not authorized this API",
}


def wechat_error_message(errcode: Any) -> str:
    """Map a WeChat errcode to a readable message."""
    try:
        code = int(errcode)
    except (TypeError, ValueError):
        return f"WeChat error ({errcode})"
    return WECHAT_ERROR_MESSAGES.get(code, f"WeChat error ({code})")


class WeChatAuthError(VipPayError):
    """WeChat token exchange failure with a stable service code."""

    error_code = "WECHAT_AUTH_FAILED"
    title = "WeChat login failed"

    _STATUS_BY_CODE = {
        WECHAT_CODE_MISSING: 400,
        WECHAT_NOT_CONFIGURED: 503,
        WECHAT_CALL_FAILED: 502,
    }
    _ERROR_CODE_BY_CODE = {
        WECHAT_CODE_MISSING: "WECHAT_CODE_MISSING",
        WECHAT_NOT_CONFIGURED: "WECHAT_NOT_CONFIGURED",
        WECHAT_CALL_FAILED: "WECHAT_CALL_FAILED",
    }

    def __init__(self, code: int, detail: Optional[str] = None):
        self.code = code
        self.status_code = self._STATUS_BY_CODE.get(code, 502)
        self.error_code = self._ERROR_CODE_BY_CODE.get(code, "WECHAT_AUTH_FAILED")
        super().__init__(detail)


@dataclass(frozen=True)
class WeChatToken:
    openid: str
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    unionid: Optional[str] = None


class WeChatOAuthClient:
    """WeChat OAuth API client.

    Args:
        config: WeChat app credentials
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        config: WeChatConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.transport = transport

    async def _get_json(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.get(url, params=params, timeout=self.config.timeout_sec)
            response.raise_for_status()
            result = response.json()
        if not isinstance(result, dict):
            raise ValueError("WeChat returned a non-object body")
        return result

    async def exchange_code(self, code: str) -> WeChatToken:
        """Exchange an authorization code for access_token + openid.

        Raises:
            WeChatAuthError: 40003 on transport/HTTP error, errcode, or
                incomplete response
        """
        try:
            result = await self._get_json(
                WECHAT_ACCESS_TOKEN_URL,
                {
                    "appid": self.config.app_id,
                    "secret": self.config.app_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                },
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "wechat.token.request_failed",
                extra={"event": "wechat.token.request_failed", "error_type": type(e).__name__},
            )
            raise WeChatAuthError(WECHAT_CALL_FAILED, "Request to WeChat failed") from e

        if result.get("errcode"):
            logger.warning(
                "wechat.token.errcode",
                extra={
                    "event": "wechat.token.errcode",
                    "errcode": result.get("errcode"),
                    "errmsg": result.get("errmsg"),
                },
            )
            raise WeChatAuthError(WECHAT_CALL_FAILED, wechat_error_message(result["errcode"]))

        if not result.get("openid") or not result.get("access_token"):
            raise WeChatAuthError(WECHAT_CALL_FAILED, "WeChat response is incomplete")

        logger.info(
            "wechat.token.exchanged",
            extra={"event": "wechat.token.exchanged", "openid": mask_identifier(result["openid"])},
        )
        return WeChatToken(
            openid=result["openid"],
            access_token=result["access_token"],
            expires_in=int(result.get("expires_in") or DEFAULT_EXPIRES_IN),
            refresh_token=result.get("refresh_token"),
            scope=result.get("scope"),
            unionid=result.get("unionid"),
        )

    async def get_user_info(self, access_token: str, openid: str) -> dict[str, Any]:
        """Fetch the user's profile.

        Raises:
            httpx.HTTPError: Transport or HTTP status failure
            ValueError: errcode response or non-JSON body
        """
        result = await self._get_json(
            WECHAT_USERINFO_URL,
            {"access_token": access_token, "openid": openid, "lang": "zh_CN"},
        )
        if result.get("errcode"):
            raise ValueError(result.get("errmsg") or f"WeChat error ({result['errcode']})")
        return result

    async def login(self, code: Optional[str]) -> dict[str, Any]:
        """Code exchange + best-effort profile lookup.

        Returns:
            openid, access_token, expires_in, nickname, headimgurl, sex, unionid
        """
        if not code:
            raise WeChatAuthError(WECHAT_CODE_MISSING, "Missing authorization code")

        token = await self.exchange_code(code)

        user_info: dict[str, Any] = {}
        try:
            user_info = await self.get_user_info(token.access_token, token.openid)
        except (httpx.HTTPError, ValueError) as e:
            # Profile is optional; login proceeds without it
            logger.warning(
                "wechat.userinfo.failed",
                extra={"event": "wechat.userinfo.failed", "error_type": type(e).__name__},
            )

        return {
            "openid": token.openid,
            "access_token": token.access_token,
            "expires_in": token.expires_in,
            "nickname": user_info.get("nickname"),
            "headimgurl": user_info.get("headimgurl"),
            "sex": user_info.get("sex"),
            "unionid": token.unionid or user_info.get("unionid"),
        }


def get_wechat_client() -> WeChatOAuthClient:
    """Build a WeChat client from the environment.

    Raises:
        WeChatAuthError: 40002 if WECHAT_APP_ID / WECHAT_APP_SECRET are missing
    """
    try:
        config = load_wechat_config()
    except ConfigurationMissing as e:
        logger.error(
            "wechat.not_configured",
            extra={"event": "wechat.not_configured", "missing": e.missing},
        )
        raise WeChatAuthError(WECHAT_NOT_CONFIGURED, "WeChat login is not configured") from e
    return WeChatOAuthClient(config)
