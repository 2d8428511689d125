"""Environment variable resolution utilities.

Canonical env names + fail-fast validation. Secrets are never logged.
"""

import os
from dataclasses import dataclass
from typing import Optional

from vippay_api.errors import ConfigurationMissing

DEFAULT_YUNGOU_APP_PAY_URL = "https://api.pay.yungouos.com/api/pay/wxpay/appPay"
DEFAULT_UPSTREAM_TIMEOUT_SEC = 10.0

# Placeholder values shipped in deployment templates count as "not configured"
_PLACEHOLDER_PREFIX = "YOUR_"


def get_vippay_env() -> str:
    """Get environment name.

    Priority:
    1. VIPPAY_ENV (canonical)
    2. Default: "local"

    Returns:
        Environment name (lowercase)
    """
    return (os.getenv("VIPPAY_ENV") or "local").lower()


def is_production_env() -> bool:
    """Return True when VIPPAY_ENV is prod/production."""
    return get_vippay_env() in {"prod", "production"}


def _read_required(names: list[str]) -> tuple[dict[str, str], list[str]]:
    values: dict[str, str] = {}
    missing: list[str] = []
    for name in names:
        value = (os.getenv(name) or "").strip()
        if not value or value.startswith(_PLACEHOLDER_PREFIX):
            missing.append(name)
        else:
            values[name] = value
    return values, missing


def _read_timeout(name: str) -> float:
    raw = os.getenv(name)
    if not raw:
        return DEFAULT_UPSTREAM_TIMEOUT_SEC
    try:
        timeout = float(raw)
    except ValueError:
        raise ConfigurationMissing([name], f"{name} must be a number of seconds, got {raw!r}")
    if timeout <= 0:
        raise ConfigurationMissing([name], f"{name} must be positive, got {raw!r}")
    return timeout


@dataclass(frozen=True)
class PaymentConfig:
    """Payment provider configuration (merchant id, signing secret, callback URL)."""

    mch_id: str
    api_key: str
    notify_url: str
    app_pay_url: str = DEFAULT_YUNGOU_APP_PAY_URL
    timeout_sec: float = DEFAULT_UPSTREAM_TIMEOUT_SEC

    def __repr__(self) -> str:
        # api_key is the shared signing secret
        return (
            f"PaymentConfig(mch_id={self.mch_id!r}, api_key='***', "
            f"notify_url={self.notify_url!r}, app_pay_url={self.app_pay_url!r})"
        )


@dataclass(frozen=True)
class WeChatConfig:
    """WeChat Open Platform credentials for the OAuth code exchange."""

    app_id: str
    app_secret: str
    timeout_sec: float = DEFAULT_UPSTREAM_TIMEOUT_SEC

    def __repr__(self) -> str:
        return f"WeChatConfig(app_id={self.app_id!r}, app_secret='***')"


def load_payment_config() -> PaymentConfig:
    """Load payment configuration from environment.

    Required: YUNGOU_MCH_ID, YUNGOU_API_KEY, PAYMENT_NOTIFY_URL
    Optional: YUNGOU_APP_PAY_URL, YUNGOU_TIMEOUT_SEC

    Raises:
        ConfigurationMissing: If any required value is absent or a placeholder
    """
    values, missing = _read_required(["YUNGOU_MCH_ID", "YUNGOU_API_KEY", "PAYMENT_NOTIFY_URL"])
    if missing:
        raise ConfigurationMissing(missing)

    return PaymentConfig(
        mch_id=values["YUNGOU_MCH_ID"],
        api_key=values["YUNGOU_API_KEY"],
        notify_url=values["PAYMENT_NOTIFY_URL"],
        app_pay_url=os.getenv("YUNGOU_APP_PAY_URL") or DEFAULT_YUNGOU_APP_PAY_URL,
        timeout_sec=_read_timeout("YUNGOU_TIMEOUT_SEC"),
    )


def load_wechat_config() -> WeChatConfig:
    """Load WeChat OAuth configuration from environment.

    Required: WECHAT_APP_ID, WECHAT_APP_SECRET

    Raises:
        ConfigurationMissing: If any required value is absent or a placeholder
    """
    values, missing = _read_required(["WECHAT_APP_ID", "WECHAT_APP_SECRET"])
    if missing:
        raise ConfigurationMissing(missing)

    return WeChatConfig(
        app_id=values["WECHAT_APP_ID"],
        app_secret=values["WECHAT_APP_SECRET"],
        timeout_sec=_read_timeout("WECHAT_TIMEOUT_SEC"),
    )


def get_cors_allowed_origins() -> list[str]:
    """Get CORS allowlist (comma-separated CORS_ALLOWED_ORIGINS).

    Falls back to localhost variants when unset.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]


def get_database_url() -> Optional[str]:
    """Get DATABASE_URL (None when unset)."""
    return os.getenv("DATABASE_URL")
