"""
Route registration for the relay API.

Responsibilities:
- Define HTTP endpoints
- Pull the gateway / supervisor from app.state
- Wrap gateway results in the {success: true, ...} envelope

Failures are raised as GatewayError and rendered by the app's exception
handler.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from presenter.pairing import render_pairing_page
from session.gateway import RequestGateway
from supervisor.runtime import Supervisor

from server.schemas import SendPdfRequest, SendRequest


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _gateway() -> RequestGateway:
        return app.state.gateway

    def _supervisor() -> Supervisor:
        return app.state.supervisor

    @app.get("/")
    async def root() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return _gateway().service_info()

    @app.get("/health")
    async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/status")
    async def status() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return _gateway().status()

    @app.get("/qr", response_class=HTMLResponse)
    async def qr() -> HTMLResponse:  # pyright: ignore[reportUnusedFunction]
        return HTMLResponse(render_pairing_page(_supervisor().snapshot()))

    @app.post("/send")
    async def send(body: SendRequest) -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        result = await _gateway().send_message(body.phone, body.message)
        return {"success": True, **result}

    @app.post("/send-pdf")
    async def send_pdf(body: SendPdfRequest) -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        result = await _gateway().send_document(
            body.phone,
            message=body.message,
            pdf_base64=body.pdf_base64,
            filename=body.filename,
        )
        return {"success": True, **result}

    @app.post("/logout")
    async def logout() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        await _gateway().sign_out()
        return {"success": True, "message": "Logged out"}

    @app.post("/restart")
    async def restart() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        _gateway().restart()
        return {"success": True, "message": "Restarting..."}
