"""Shared builders for payment tests (orders, signed callback parameters)."""

from sqlalchemy.orm import Session

from vippay_api.billing.attachment import encode_attachment
from vippay_api.billing.signature import compute_signature
from vippay_api.db.models import Order

TEST_MCH_ID = "1600000001"
TEST_API_KEY = "test-yungou-signing-key"
TEST_NOTIFY_URL = "https://vippay.example.com/api/payment/callback"


def make_pending_order(
    db: Session,
    *,
    out_trade_no: str = "VIP_u1_1700000000000",
    user_id: str = "u1",
    amount: int = 6900,
    status: str = "pending",
) -> Order:
    order = Order(
        out_trade_no=out_trade_no,
        user_id=user_id,
        product_type="lifetime",
        amount=amount,
        status=status,
    )
    db.add(order)
    db.commit()
    return order


def signed_callback_params(
    *,
    out_trade_no: str = "VIP_u1_1700000000000",
    transaction_id: str = "T1",
    total_fee: str = "6900",
    user_id: str = "u1",
    product_type: str = "lifetime",
    secret: str = TEST_API_KEY,
) -> dict[str, str]:
    """Callback form fields with a valid signature."""
    params = {
        "out_trade_no": out_trade_no,
        "transaction_id": transaction_id,
        "total_fee": total_fee,
    }
    params["sign"] = compute_signature(params, secret)
    params["attach"] = encode_attachment(user_id, product_type)
    return params
