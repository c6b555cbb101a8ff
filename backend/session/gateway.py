"""
Request gateway.

Responsibilities:
- Validate and normalize inbound requests
- Gate every send on the supervisor's connection status
- Translate handle failures into the GatewayError taxonomy
- Time and log each outbound request

NOT responsible for:
- Any state machine logic (the supervisor owns lifecycle)
- HTTP concerns (status codes live on the error classes, the server maps them)
"""

from __future__ import annotations

import base64
import binascii
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from adapters.whatsapp.base import Attachment, SessionHandle
from constants import (
    DEFAULT_COUNTRY_PREFIX,
    DEFAULT_DOCUMENT_FILENAME,
    DOCUMENT_MIMETYPE,
    MSG_NO_SESSION,
    MSG_NOT_CONNECTED,
    MSG_NOT_REGISTERED,
    MSG_PHONE_REQUIRED,
    MSG_SEND_FIELDS_REQUIRED,
)
from observability.logger import log_event
from observability.metrics import timed
from session.connection_status import ConnectionStatus
from session.errors import (
    GatewayError,
    NotReadyError,
    ProviderError,
    RecipientNotFoundError,
    ValidationError,
)
from session.phone import normalize_destination, to_chat_id
from supervisor.runtime import Supervisor

T = TypeVar("T")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _decode_document(pdf_base64: str) -> bytes:
    """Decode a base64 body, tolerating a data-URI header and line breaks."""
    body = pdf_base64
    if body.startswith("data:") and "," in body:
        body = body.split(",", 1)[1]
    body = "".join(body.split())
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("pdfBase64 is not valid base64") from e


class RequestGateway:
    """
    Stateless facade between the HTTP layer and the supervisor.

    Holds no session state of its own: every call reads the supervisor's
    current status and handle reference.
    """

    def __init__(
        self,
        supervisor: Supervisor,
        *,
        country_prefix: str = DEFAULT_COUNTRY_PREFIX,
        service_name: str = "",
    ) -> None:
        self._supervisor = supervisor
        self._country_prefix = country_prefix
        self._service_name = service_name

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def service_info(self) -> dict[str, Any]:
        return {
            "service": self._service_name,
            "status": self._supervisor.state.status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def status(self) -> dict[str, Any]:
        """Snapshot of the lifecycle state in the public JSON shape."""
        state = self._supervisor.state
        identity = state.identity
        return {
            "status": state.status.value,
            "qrCode": state.pairing_material,
            "connectedAs": (
                {"name": identity.display_name, "phone": identity.network_address}
                if identity is not None
                else None
            ),
            "lastError": state.last_error,
            "initAttempts": state.init_attempts,
            "loading": state.loading_percent,
        }

    # ------------------------------------------------------------------
    # Sends
    # ------------------------------------------------------------------

    async def send_message(self, phone: str | None, message: str | None) -> dict[str, Any]:
        if not phone or not message or not message.strip():
            raise ValidationError(MSG_SEND_FIELDS_REQUIRED)

        handle = self._require_ready()
        normalized = self._normalize(phone)
        chat_id = to_chat_id(normalized)

        status = self._supervisor.state.status.value
        with timed("send_text", status=status, details={"to": normalized}):
            await self._ensure_registered(handle, chat_id)
            message_id = await self._call(
                "send_text", normalized, lambda: handle.send_text(chat_id, message)
            )

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "MESSAGE_SENT",
            "to": normalized,
            "message_id": message_id,
        })
        return {"messageId": message_id, "to": normalized}

    async def send_document(
        self,
        phone: str | None,
        *,
        message: str | None = None,
        pdf_base64: str | None = None,
        filename: str | None = None,
    ) -> dict[str, Any]:
        if not phone:
            raise ValidationError(MSG_PHONE_REQUIRED)

        data = _decode_document(pdf_base64) if pdf_base64 else None

        handle = self._require_ready()
        normalized = self._normalize(phone)
        chat_id = to_chat_id(normalized)

        status = self._supervisor.state.status.value
        with timed("send_document", status=status, details={"to": normalized}) as extra:
            await self._ensure_registered(handle, chat_id)

            if message:
                await self._call(
                    "send_text", normalized, lambda: handle.send_text(chat_id, message)
                )
                extra["text"] = True

            if data is not None:
                name = filename or DEFAULT_DOCUMENT_FILENAME
                attachment = Attachment(mimetype=DOCUMENT_MIMETYPE, data=data, filename=name)
                await self._call(
                    "send_document",
                    normalized,
                    lambda: handle.send_document(chat_id, attachment, name),
                )
                extra["document_bytes"] = len(data)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "DOCUMENT_SENT",
            "to": normalized,
            "with_text": bool(message),
            "with_document": data is not None,
        })
        return {"to": normalized}

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def sign_out(self) -> None:
        """Invalidate credentials on the remote side, then record it."""
        handle = self._supervisor.handle
        if handle is None:
            raise ProviderError(MSG_NO_SESSION)

        await self._call("logout", None, handle.logout)
        await self._supervisor.notify_signed_out()
        log_event({"ts_ms": _now_ms(), "event_type": "SIGNED_OUT"})

    def restart(self) -> None:
        """Fire-and-forget; the supervisor performs the restart in the background."""
        self._supervisor.request_restart()
        log_event({"ts_ms": _now_ms(), "event_type": "RESTART_REQUESTED"})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_ready(self) -> SessionHandle:
        handle = self._supervisor.handle
        if self._supervisor.state.status is not ConnectionStatus.CONNECTED or handle is None:
            raise NotReadyError(MSG_NOT_CONNECTED)
        return handle

    def _normalize(self, phone: str) -> str:
        normalized = normalize_destination(phone, country_prefix=self._country_prefix)
        if not normalized:
            raise ValidationError("Phone must contain digits")
        return normalized

    async def _ensure_registered(self, handle: SessionHandle, chat_id: str) -> None:
        registered = await self._call(
            "is_registered_user", chat_id, lambda: handle.is_registered_user(chat_id)
        )
        if not registered:
            raise RecipientNotFoundError(MSG_NOT_REGISTERED)

    async def _call(
        self,
        operation: str,
        target: str | None,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one handle call, mapping any failure to ProviderError."""
        try:
            return await fn()
        except GatewayError:
            raise
        except Exception as exc:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PROVIDER_ERROR",
                "operation": operation,
                "target": target,
                "error": _describe(exc),
                "error_type": type(exc).__name__,
            })
            raise ProviderError(_describe(exc)) from exc
