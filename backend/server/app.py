"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and error envelopes
- Build the process-wide supervisor and request gateway
- Start / stop the session lifecycle with the app
- Register routes
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.whatsapp.base import HandleFactory
from adapters.whatsapp.browser import prepare_session_dir
from adapters.whatsapp.web_client import make_handle_factory
from config import AppConfig
from observability import logger
from observability.logger import log_event
from session.errors import GatewayError
from session.gateway import RequestGateway
from supervisor.retry import RetryPolicy
from supervisor.runtime import Supervisor

from server.routes import register_routes


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    supervisor: Supervisor = app.state.supervisor
    config: AppConfig = app.state.config

    log_event({
        "ts_ms": _now_ms(),
        "event_type": "SERVICE_STARTED",
        "service": config.service_name,
        "port": config.port,
        "env": config.env,
    })
    supervisor.start()
    try:
        yield
    finally:
        await supervisor.shutdown()
        log_event({"ts_ms": _now_ms(), "event_type": "SERVICE_STOPPED"})


def create_app(
    config: AppConfig | None = None,
    *,
    handle_factory: HandleFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with a fake session handle factory
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(enable_json=config.enable_json_logs)

    if handle_factory is None:
        prepare_session_dir(config.session_data_dir, wipe=config.wipe_session_on_start)
        handle_factory = make_handle_factory(config)

    supervisor = Supervisor(
        handle_factory=handle_factory,
        policy=RetryPolicy.from_config(config),
        dispose_timeout_ms=config.dispose_timeout_ms,
    )

    app = FastAPI(title=config.service_name, lifespan=_lifespan)

    app.state.config = config
    app.state.supervisor = supervisor
    app.state.gateway = RequestGateway(
        supervisor,
        country_prefix=config.country_prefix,
        service_name=config.service_name,
    )

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error envelopes: {success: false, error: <message>}
    @app.exception_handler(GatewayError)
    async def _gateway_error(_: Request, exc: GatewayError) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(_: Request, exc: RequestValidationError) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "REQUEST_REJECTED",
            "errors": [err.get("msg") for err in exc.errors()],
        })
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Request body must be a JSON object"},
        )

    # Routes
    register_routes(app)

    return app
