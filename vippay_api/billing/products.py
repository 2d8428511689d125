"""VIP product catalog.

Amounts are integer minor units (fen). The merchant order number prefix is
shared by all products.
"""

from dataclasses import dataclass
from typing import Optional

from vippay_api.errors import InvalidProduct

ORDER_NUMBER_PREFIX = "VIP"


@dataclass(frozen=True)
class Product:
    """A purchasable VIP product."""

    product_type: str
    amount: int
    description: str
    # None = entitlement never expires
    duration_days: Optional[int]

    @property
    def non_expiring(self) -> bool:
        return self.duration_days is None


PRODUCTS: dict[str, Product] = {
    "lifetime": Product(
        product_type="lifetime",
        amount=6900,  # ¥69
        description="VIP-lifetime",
        duration_days=None,
    ),
}


def get_product(product_type: Optional[str]) -> Product:
    """Look up a product by type.

    Raises:
        InvalidProduct: If product_type is empty or unknown
    """
    if not product_type or product_type not in PRODUCTS:
        raise InvalidProduct(f"Unknown product type: {product_type!r}")
    return PRODUCTS[product_type]


def is_non_expiring(product_type: str) -> bool:
    """True if a grant for product_type has no expiry (unknown types: False)."""
    product = PRODUCTS.get(product_type)
    return product is not None and product.non_expiring


def build_out_trade_no(user_id: str, created_at_ms: int) -> str:
    """Merchant order number: <PREFIX>_<user_id>_<epoch millis>."""
    return f"{ORDER_NUMBER_PREFIX}_{user_id}_{created_at_ms}"
