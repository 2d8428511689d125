"""Request context management for observability.

Context variables for request tracking across async boundaries.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# User ID - authenticated user of the current request (session auth)
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Merchant order number being processed (webhook path)
out_trade_no_var: ContextVar[str] = ContextVar("out_trade_no", default="")
