"""POST /v1/auth/wechat/token: code exchange and stable error codes."""

from unittest.mock import patch

import httpx
import pytest

from vippay_api.auth.wechat import WeChatOAuthClient, wechat_error_message
from vippay_api.config.env import WeChatConfig

TOKEN_PATH = "/v1/auth/wechat/token"

_TOKEN_OK = {
    "access_token": "ACCESS_TOKEN_VALUE",
    "expires_in": 7200,
    "refresh_token": "REFRESH_TOKEN_VALUE",
    "openid": "o6_bmjrPTlm6_2sgVt7hMZOPfL2M",
    "scope": "snsapi_userinfo",
}

_USERINFO_OK = {
    "openid": "o6_bmjrPTlm6_2sgVt7hMZOPfL2M",
    "nickname": "Tester",
    "sex": 1,
    "headimgurl": "https://thirdwx.qlogo.cn/avatar.png",
    "unionid": "o6_union_id",
}


def _client(token_response: httpx.Response, userinfo_response: httpx.Response | None = None):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/sns/oauth2/access_token":
            return token_response
        if request.url.path == "/sns/userinfo":
            return userinfo_response or httpx.Response(200, json=_USERINFO_OK)
        return httpx.Response(404)

    client = WeChatOAuthClient(
        WeChatConfig(app_id="wx_app", app_secret="wx_secret"),
        transport=httpx.MockTransport(handler),
    )
    return client, calls


def test_exchange_success_with_profile(test_client):
    client, calls = _client(httpx.Response(200, json=_TOKEN_OK))

    with patch("vippay_api.routers.wechat.get_wechat_client", return_value=client):
        resp = test_client.post(TOKEN_PATH, json={"code": "AUTH_CODE"})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["openid"] == _TOKEN_OK["openid"]
    assert body["access_token"] == "ACCESS_TOKEN_VALUE"
    assert body["expires_in"] == 7200
    assert body["nickname"] == "Tester"
    assert body["headimgurl"] == _USERINFO_OK["headimgurl"]
    assert body["sex"] == 1
    assert body["unionid"] == "o6_union_id"

    assert calls[0].url.params["code"] == "AUTH_CODE"
    assert calls[0].url.params["grant_type"] == "authorization_code"


def test_profile_failure_does_not_block_login(test_client):
    client, _ = _client(
        httpx.Response(200, json=_TOKEN_OK),
        httpx.Response(200, json={"errcode": 48001, "errmsg": "api unauthorized"}),
    )

    with patch("vippay_api.routers.wechat.get_wechat_client", return_value=client):
        resp = test_client.post(TOKEN_PATH, json={"code": "AUTH_CODE"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["openid"] == _TOKEN_OK["openid"]
    assert body["nickname"] is None
    assert body["unionid"] is None


@pytest.mark.parametrize("payload", [{}, {"code": ""}])
def test_missing_code_is_40001(test_client, payload):
    resp = test_client.post(TOKEN_PATH, json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == 40001
    assert body["error_code"] == "WECHAT_CODE_MISSING"


def test_not_configured_is_40002(test_client, monkeypatch):
    monkeypatch.delenv("WECHAT_APP_ID", raising=False)
    monkeypatch.delenv("WECHAT_APP_SECRET", raising=False)

    resp = test_client.post(TOKEN_PATH, json={"code": "AUTH_CODE"})

    assert resp.status_code == 503
    assert resp.json()["code"] == 40002


def test_wechat_errcode_is_40003_with_mapped_message(test_client):
    client, _ = _client(httpx.Response(200, json={"errcode": 40029, "errmsg": "invalid code"}))

    with patch("vippay_api.routers.wechat.get_wechat_client", return_value=client):
        resp = test_client.post(TOKEN_PATH, json={"code": "USED_CODE"})

    assert resp.status_code == 502
    body = resp.json()
    assert body["code"] == 40003
    assert body["detail"] == "Invalid code, or code already used"


def test_incomplete_response_is_40003(test_client):
    client, _ = _client(httpx.Response(200, json={"expires_in": 7200}))

    with patch("vippay_api.routers.wechat.get_wechat_client", return_value=client):
        resp = test_client.post(TOKEN_PATH, json={"code": "AUTH_CODE"})

    assert resp.status_code == 502
    assert resp.json()["code"] == 40003


def test_unknown_errcode_message():
    assert wechat_error_message(99999) == "WeChat error (99999)"
    assert wechat_error_message("-1") == "WeChat system busy, please retry later"
