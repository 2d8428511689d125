"""VIP payment API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vippay_api import __version__
from vippay_api.auth.wechat import WeChatAuthError
from vippay_api.config.env import get_cors_allowed_origins, is_production_env, load_payment_config
from vippay_api.context import out_trade_no_var, request_id_var, user_id_var
from vippay_api.errors import ConfigurationMissing, VipPayError
from vippay_api.routers import health, orders, webhooks, wechat
from vippay_api.schemas import ProblemDetail
from vippay_api.utils import configure_json_logging

# Set VIPPAY_JSON_LOGS=false to disable (defaults to true)
if os.getenv("VIPPAY_JSON_LOGS", "true").lower() != "false":
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate the payment configuration once at startup.

    Production: a missing value aborts startup (fail-fast).
    Elsewhere: logged; affected endpoints answer with the configuration
    error at the point of use.
    """
    try:
        load_payment_config()
        app.state.payment_configured = True
    except ConfigurationMissing as e:
        app.state.payment_configured = False
        if is_production_env():
            logger.critical(
                "Payment configuration missing, refusing to start",
                extra={"event": "startup.config_missing", "missing": e.missing},
            )
            raise
        logger.warning(
            "Payment configuration incomplete",
            extra={"event": "startup.config_incomplete", "missing": e.missing},
        )
    yield


app = FastAPI(
    title="VIP Payment API",
    description="VIP purchase orders, YunGouOS payment callbacks and WeChat login, with RFC 9457 error handling.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allowed_origins(),  # Never "*" with credentials
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ============================================================================
# Request Completion Logging
# ============================================================================


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Log every HTTP request completion.

    - Every HTTP request emits "http.request.completed"
    - Fields: method, path, status_code, duration_ms (+ request_id/user_id from context)
    - Logs even on exceptions (status_code=500)
    - Clears per-request contextvars at start and end
    """
    user_id_var.set("")
    out_trade_no_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "http.request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        user_id_var.set("")
        out_trade_no_var.set("")


# ============================================================================
# Request ID Middleware (MUST BE OUTERMOST)
# ============================================================================


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Generate and propagate request_id for observability.

    - Accepts X-Request-ID header from client (optional)
    - Generates new UUID if not provided
    - Returns X-Request-ID in response headers

    Registered last so it is the outermost middleware.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# ============================================================================
# RFC 9457 Global Exception Handlers
# ============================================================================


def _instance() -> str:
    request_id = request_id_var.get()
    return f"urn:vippay:trace:{request_id}" if request_id else f"urn:vippay:trace:{uuid.uuid4()}"


@app.exception_handler(VipPayError)
async def vippay_error_handler(request: Request, exc: VipPayError) -> JSONResponse:
    """Render domain errors as Problem Details with a stable error_code."""
    problem = ProblemDetail(
        type=f"urn:vippay:problems:{exc.error_code.lower().replace('_', '-')}",
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=_instance(),
        error_code=exc.error_code,
        code=exc.code if isinstance(exc, WeChatAuthError) else None,
    )

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        exc.error_code,
        extra={
            "event": "api.error",
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with RFC 9457 Problem Details format.

    A dict detail that is already a problem document (session auth) is
    returned as-is.
    """
    headers = dict(exc.headers) if exc.headers else {}

    if isinstance(exc.detail, dict) and "type" in exc.detail and "title" in exc.detail:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail,
            media_type="application/problem+json",
            headers=headers,
        )

    detail_value = exc.detail if exc.detail is not None else _get_title_for_status(exc.status_code)

    problem = ProblemDetail(
        type=f"urn:vippay:problems:http-{exc.status_code}",
        title=_get_title_for_status(exc.status_code),
        status=exc.status_code,
        detail=detail_value,
        instance=_instance(),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422, application/problem+json)."""
    first_error = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []))
    msg = first_error.get("msg", "Validation error")

    problem = ProblemDetail(
        type="urn:vippay:problems:validation-error",
        title="Request Validation Failed",
        status=422,
        detail=f"Invalid field '{field}': {msg}",
        instance=_instance(),
        error_code="VALIDATION_ERROR",
    )

    return JSONResponse(
        status_code=422,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions (500, application/problem+json)."""
    problem = ProblemDetail(
        type="urn:vippay:problems:internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=_instance(),
        error_code="INTERNAL_ERROR",
    )

    logger.error(f"Unhandled exception: {type(exc).__name__}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


def _get_title_for_status(status_code: int) -> str:
    """Get human-readable title for HTTP status code."""
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
    }
    return titles.get(status_code, f"HTTP {status_code}")


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(orders.router)
app.include_router(webhooks.router)
app.include_router(wechat.router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "VIP Payment API", "version": __version__}
