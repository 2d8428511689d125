"""Concurrent duplicate deliveries converge to exactly one paid transition.

N threads deliver the same signed callback at once, each with its own
session against a shared file-backed SQLite store (the conditional UPDATE
is the only coordination). Expected:
  - every delivery answers SUCCESS
  - exactly one ORDER_PAID and one VIP_GRANTED audit row
  - the user holds the order id exactly once
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from vippay_api.billing.callback_handler import handle_payment_callback
from vippay_api.billing.order_lifecycle import OrderLifecycle
from vippay_api.db.engine import build_engine, build_sessionmaker
from vippay_api.db.models import BillingAuditLog, Base, Order, User

from tests.helpers import make_pending_order, signed_callback_params

N_DELIVERIES = 8


@pytest.fixture
def file_sessionmaker(tmp_path, monkeypatch):
    monkeypatch.setenv("VIPPAY_DB_POOL", "nullpool")
    engine = build_engine(f"sqlite:///{tmp_path / 'vippay_concurrency.db'}")
    Base.metadata.create_all(engine)
    try:
        yield build_sessionmaker(engine)
    finally:
        engine.dispose()


@pytest.mark.concurrency
def test_concurrent_duplicate_callbacks_single_transition(file_sessionmaker, payment_config):
    with file_sessionmaker() as setup:
        setup.add(User(id="u1", vip_order_ids=[]))
        setup.commit()
        order_id = make_pending_order(setup).id

    params = signed_callback_params()

    def deliver(_: int) -> str:
        with file_sessionmaker() as db:
            return handle_payment_callback(params, OrderLifecycle(db, payment_config))

    with ThreadPoolExecutor(max_workers=N_DELIVERIES) as pool:
        acks = list(pool.map(deliver, range(N_DELIVERIES)))

    assert acks == ["SUCCESS"] * N_DELIVERIES

    with file_sessionmaker() as check:
        order = check.get(Order, order_id)
        assert order.status == "paid"
        assert order.transaction_id == "T1"

        counts = dict(
            check.execute(
                select(BillingAuditLog.event_type, func.count()).group_by(BillingAuditLog.event_type)
            ).all()
        )
        assert counts == {"ORDER_PAID": 1, "VIP_GRANTED": 1}

        user = check.get(User, "u1")
        assert user.vip_order_ids == [order_id]
        assert user.vip_type == "lifetime"


@pytest.mark.concurrency
def test_concurrent_deliveries_for_distinct_orders_all_granted(file_sessionmaker, payment_config):
    out_trade_nos = [f"VIP_u1_170000000000{i}" for i in range(4)]
    with file_sessionmaker() as setup:
        setup.add(User(id="u1", vip_order_ids=[]))
        setup.commit()
        order_ids = [make_pending_order(setup, out_trade_no=no).id for no in out_trade_nos]

    def deliver(out_trade_no: str) -> str:
        params = signed_callback_params(out_trade_no=out_trade_no, transaction_id=f"T-{out_trade_no}")
        with file_sessionmaker() as db:
            return handle_payment_callback(params, OrderLifecycle(db, payment_config))

    with ThreadPoolExecutor(max_workers=len(out_trade_nos)) as pool:
        acks = list(pool.map(deliver, out_trade_nos))

    assert acks == ["SUCCESS"] * len(out_trade_nos)

    with file_sessionmaker() as check:
        user = check.get(User, "u1")
        # Write-first grant: concurrent appends for one user never lose an order id
        assert sorted(user.vip_order_ids) == sorted(order_ids)
