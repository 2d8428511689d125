"""WeChat login endpoint."""

from fastapi import APIRouter

from vippay_api.auth.wechat import WECHAT_CODE_MISSING, WeChatAuthError, get_wechat_client
from vippay_api.schemas import WeChatTokenRequest, WeChatTokenResponse

router = APIRouter(prefix="/v1/auth/wechat", tags=["auth"])


@router.post("/token", response_model=WeChatTokenResponse)
async def wechat_token(request: WeChatTokenRequest) -> WeChatTokenResponse:
    """Exchange a WeChat authorization code for openid + access_token.

    Errors carry code 40001 (missing code), 40002 (not configured) or
    40003 (WeChat call failed).
    """
    if not request.code:
        raise WeChatAuthError(WECHAT_CODE_MISSING, "Missing authorization code")

    client = get_wechat_client()
    result = await client.login(request.code)
    return WeChatTokenResponse(**result)
