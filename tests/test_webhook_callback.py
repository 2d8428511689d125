"""POST /api/payment/callback: acknowledgement literals and log hygiene.

Coverage:
  T1) valid form callback → text/plain "SUCCESS"; order paid; VIP granted
  T2) duplicate delivery → "SUCCESS" again, no second grant
  T3) tampered signature / unknown order / malformed attach → "FAIL"
  T4) payment configuration missing → "FAIL" (never 5xx)
  T5) JSON body accepted for compatibility; undecodable bodies → "FAIL"
  T6) WEBHOOK_RECEIVED has payload_hash + size; sign / attach never logged
  T7) unexpected lifecycle error → "FAIL"
"""

import hashlib
import logging
from unittest.mock import patch
from urllib.parse import urlencode

import httpx
import pytest

from vippay_api.billing.order_lifecycle import OrderLifecycle
from vippay_api.db.models import Order, User
from vippay_api.db.session import get_db
from vippay_api.main import app

from tests.helpers import make_pending_order, signed_callback_params

CALLBACK_PATH = "/api/payment/callback"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


def _post_form(client, params: dict):
    return client.post(CALLBACK_PATH, content=urlencode(params).encode(), headers=FORM_HEADERS)


class LogCapture(logging.Handler):
    """Collects every record emitted during a request."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def all_text(self) -> str:
        parts = []
        for record in self.records:
            parts.append(record.getMessage())
            parts.extend(str(v) for v in record.__dict__.values())
        return "\n".join(parts)


@pytest.fixture
def log_capture():
    handler = LogCapture()
    root = logging.getLogger()
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    try:
        yield handler
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


def test_t1_valid_callback_acknowledged(test_client, db_session, payment_env, vip_user):
    order = make_pending_order(db_session)

    resp = _post_form(test_client, signed_callback_params())

    assert resp.status_code == 200
    assert resp.text == "SUCCESS"
    assert resp.headers["content-type"].startswith("text/plain")
    assert "X-Request-ID" in resp.headers

    db_session.refresh(order)
    assert order.status == "paid"
    user = db_session.get(User, "u1", populate_existing=True)
    assert user.vip_type == "lifetime"
    assert user.vip_order_ids == [order.id]


def test_t2_duplicate_delivery_acknowledged_once(test_client, db_session, payment_env, vip_user):
    order = make_pending_order(db_session)
    params = signed_callback_params()

    assert _post_form(test_client, params).text == "SUCCESS"
    assert _post_form(test_client, params).text == "SUCCESS"

    user = db_session.get(User, "u1", populate_existing=True)
    assert user.vip_order_ids == [order.id]


@pytest.mark.parametrize(
    "mutate",
    [
        pytest.param(lambda p: p.update(sign="0" * 32), id="tampered-sign"),
        pytest.param(lambda p: p.pop("sign"), id="missing-sign"),
        pytest.param(lambda p: p.update(attach="{broken"), id="malformed-attach"),
    ],
)
def test_t3_rejected_callbacks_fail(test_client, db_session, payment_env, vip_user, mutate):
    order = make_pending_order(db_session)
    params = signed_callback_params()
    mutate(params)

    resp = _post_form(test_client, params)

    assert resp.status_code == 200
    assert resp.text == "FAIL"
    db_session.refresh(order)
    assert order.status == "pending"


def test_t3_unknown_order_fails(test_client, db_session, payment_env):
    resp = _post_form(test_client, signed_callback_params(out_trade_no="VIP_nobody_1"))

    assert resp.text == "FAIL"
    assert db_session.query(Order).count() == 0


def test_t4_missing_configuration_fails(test_client, db_session, monkeypatch, vip_user):
    for name in ("YUNGOU_MCH_ID", "YUNGOU_API_KEY", "PAYMENT_NOTIFY_URL"):
        monkeypatch.delenv(name, raising=False)
    order = make_pending_order(db_session)

    resp = _post_form(test_client, signed_callback_params())

    assert resp.status_code == 200
    assert resp.text == "FAIL"
    db_session.refresh(order)
    assert order.status == "pending"


@pytest.mark.asyncio
async def test_t5_json_body_accepted(db_session, payment_env, vip_user):
    order = make_pending_order(db_session)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            resp = await client.post(CALLBACK_PATH, json=signed_callback_params())
    finally:
        app.dependency_overrides.clear()

    assert resp.text == "SUCCESS"
    db_session.refresh(order)
    assert order.status == "paid"


def test_t5_non_object_json_fails(test_client, payment_env):
    resp = test_client.post(CALLBACK_PATH, json=["not", "an", "object"])

    assert resp.text == "FAIL"


@pytest.mark.parametrize(
    ("content_type", "body"),
    [
        pytest.param(
            "multipart/form-data; boundary=xx",
            b"--xx\r\nContent-Disposition: form-data\r\n\r\nbroken",
            id="multipart-without-field-name",
        ),
        pytest.param("application/json", b"{not json", id="truncated-json"),
    ],
)
def test_t5_undecodable_body_fails_as_plain_text(
    test_client, db_session, payment_env, vip_user, log_capture, content_type, body
):
    order = make_pending_order(db_session)

    resp = test_client.post(CALLBACK_PATH, content=body, headers={"Content-Type": content_type})

    assert resp.status_code == 200
    assert resp.text == "FAIL"
    assert resp.headers["content-type"].startswith("text/plain")
    db_session.refresh(order)
    assert order.status == "pending"
    rejected = [r for r in log_capture.records if getattr(r, "event", None) == "callback.rejected"]
    assert [r.reason for r in rejected] == ["invalid_payload"]


def test_t6_log_hygiene(test_client, db_session, payment_env, vip_user, log_capture):
    make_pending_order(db_session)
    params = signed_callback_params()
    raw_body = urlencode(params).encode()

    resp = test_client.post(CALLBACK_PATH, content=raw_body, headers=FORM_HEADERS)
    assert resp.text == "SUCCESS"

    received = [r for r in log_capture.records if r.getMessage() == "WEBHOOK_RECEIVED"]
    assert len(received) == 1
    assert received[0].payload_hash == hashlib.sha256(raw_body).hexdigest()
    assert received[0].payload_size == len(raw_body)

    logged = log_capture.all_text()
    assert params["sign"] not in logged
    assert params["attach"] not in logged
    assert raw_body.decode() not in logged


def test_t7_unexpected_error_fails(test_client, db_session, payment_env, vip_user):
    make_pending_order(db_session)

    with patch.object(OrderLifecycle, "handle_callback", side_effect=RuntimeError("boom")):
        resp = _post_form(test_client, signed_callback_params())

    assert resp.status_code == 200
    assert resp.text == "FAIL"
