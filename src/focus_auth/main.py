# src/focus_auth/main.py
"""Main entry point for the Focus auth bridge."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from focus_auth.api.v1 import system_router, telegram_router, wallet_router
from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.core.request_context import (
    REQUEST_ID_HEADER,
    configure_logging,
    get_request_id,
    new_request_id,
    set_request_id,
)
from focus_auth.core.settings import settings
from focus_auth.db.session import create_tables
from focus_auth.services.backend_auth import BackendAuthClient
from focus_auth.services.telegram_bot import TelegramBotClient, TelegramBotConfig

logger = logging.getLogger(__name__)

configure_logging(settings.log_level)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Out-of-band Telegram and wallet login bridged to backend sessions",
    version=settings.app_version,
)

# Outbound clients live on the app so tests can swap them per application
app.state.backend_auth = BackendAuthClient()
app.state.telegram_bot = TelegramBotClient(
    TelegramBotConfig(
        token=settings.telegram_bot_token,
        api_base_url=settings.telegram_api_base_url,
        timeout_seconds=settings.telegram_http_timeout_seconds,
    )
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Bind a request id to the logging context and echo it back."""
    rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
    set_request_id(rid)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = rid
    return response


def _error_response(status_code: int, code: AuthErrorCode, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": code.value, "error": message, "rid": get_request_id()},
    )


@app.exception_handler(AuthBridgeError)
async def auth_bridge_error_handler(request: Request, exc: AuthBridgeError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code.value, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error_response(status.HTTP_400_BAD_REQUEST, AuthErrorCode.BAD_REQUEST, message)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, AuthErrorCode.DB_ERROR, "Database error"
    )


# Include API routers
app.include_router(telegram_router)
app.include_router(wallet_router)
app.include_router(system_router)


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    if not settings.effective_credential_secret:
        logger.warning("No CREDENTIAL_SECRET or TELEGRAM_BOT_TOKEN set; Telegram exchange is disabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await app.state.backend_auth.close()
    await app.state.telegram_bot.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("focus_auth.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
