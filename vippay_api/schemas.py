"""Pydantic schemas for API requests/responses."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# POST /v1/orders - Request/Response
# ============================================================================


class CreateOrderRequest(BaseModel):
    """Request body for POST /v1/orders."""

    productType: str = Field(..., min_length=1, description="Product type (e.g. lifetime)")


class PayParams(BaseModel):
    """Provider payment-initiation parameters, passed to the app unopened."""

    model_config = ConfigDict(extra="allow")

    appId: Optional[str] = None
    partnerId: Optional[str] = None
    prepayId: Optional[str] = None
    package: Optional[str] = None
    nonceStr: Optional[str] = None
    timeStamp: Optional[str | int] = None
    sign: Optional[str] = None


class CreateOrderResponse(BaseModel):
    """Response for POST /v1/orders (201 Created)."""

    orderId: str
    outTradeNo: str
    payParams: PayParams


# ============================================================================
# GET /v1/orders/{order_id} - Response
# ============================================================================


class OrderViewResponse(BaseModel):
    """Order status visible to its owner."""

    status: str
    productType: str
    amount: int = Field(..., description="Amount in minor units (fen)")
    paidAt: Optional[str] = Field(None, description="ISO-8601 timestamp or null")


# ============================================================================
# POST /v1/auth/wechat/token - Request/Response
# ============================================================================


class WeChatTokenRequest(BaseModel):
    """Request body for the WeChat authorization-code exchange."""

    code: Optional[str] = Field(None, description="Authorization code from the WeChat SDK")


class WeChatTokenResponse(BaseModel):
    """Token exchange result (user profile is best-effort)."""

    openid: str
    access_token: str
    expires_in: Optional[int] = None
    nickname: Optional[str] = None
    headimgurl: Optional[str] = None
    sex: Optional[int] = None
    unionid: Optional[str] = None


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


# ============================================================================
# RFC 9457 Problem Details
# ============================================================================


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    error_code is a stable machine-readable extension member.
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str | dict[str, Any] = Field(..., description="Human-readable explanation or structured error details")
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")
    error_code: Optional[str] = Field(None, description="Stable error code")
    code: Optional[int] = Field(None, description="Numeric service code (WeChat login errors)")
