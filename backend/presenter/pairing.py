"""
Operator-facing pairing page.

Pure projection of supervisor state to HTML. Exactly one of three pages is
rendered, chosen in priority order:

1. a scannable QR code is available        -> QR page (auto-refresh)
2. the session is connected                -> confirmation page
3. anything else                           -> loading / error placeholder
                                              (auto-refresh)
"""

from __future__ import annotations

from html import escape

from constants import LOADING_PAGE_REFRESH_S, QR_PAGE_REFRESH_S
from session.connection_status import ConnectionStatus
from supervisor.state_dataclass import SupervisorState


_STYLE = """
    body {
        background: #111b21;
        color: white;
        font-family: Arial, sans-serif;
        display: flex;
        flex-direction: column;
        align-items: center;
        justify-content: center;
        min-height: 100vh;
        margin: 0;
    }
    img { border-radius: 10px; }
    p { color: #8696a0; margin-top: 20px; }
    .success { color: #25D366; font-size: 60px; }
    .error { color: #f15c6d; }
"""


def _page(*, title: str, body: str, refresh_s: int | None) -> str:
    refresh = (
        f'<meta http-equiv="refresh" content="{refresh_s}">' if refresh_s else ""
    )
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{escape(title)}</title>\n"
        f"{refresh}\n"
        f"<style>{_STYLE}</style>\n"
        "</head>\n"
        f"<body>\n{body}\n</body>\n"
        "</html>\n"
    )


def _qr_page(data_uri: str) -> str:
    body = (
        "<h2>&#128241; Scan with WhatsApp</h2>\n"
        f'<img src="{escape(data_uri, quote=True)}" alt="QR Code" />\n'
        "<p>Waiting for scan... (auto-refreshes)</p>"
    )
    return _page(title="WhatsApp QR Code", body=body, refresh_s=QR_PAGE_REFRESH_S)


def _connected_page(state: SupervisorState) -> str:
    identity = state.identity
    name = (identity.display_name if identity else None) or "Unknown"
    phone = (identity.network_address if identity else None) or ""
    body = (
        '<div class="success">&#9989;</div>\n'
        "<h2>WhatsApp Connected!</h2>\n"
        f"<p>Connected as: {escape(name)} ({escape(phone)})</p>"
    )
    return _page(title="WhatsApp Connected", body=body, refresh_s=None)


def _loading_page(state: SupervisorState) -> str:
    lines = [
        "<h2>&#9203; Loading WhatsApp...</h2>",
        f"<p>Status: {escape(state.status.value)}</p>",
    ]
    if state.loading_percent is not None:
        lines.append(f"<p>Syncing: {state.loading_percent}%</p>")
    if state.last_error:
        lines.append(f'<p class="error">Last error: {escape(state.last_error)}</p>')
    lines.append("<p>Please wait... (auto-refreshes)</p>")
    return _page(
        title="WhatsApp Loading",
        body="\n".join(lines),
        refresh_s=LOADING_PAGE_REFRESH_S,
    )


def render_pairing_page(state: SupervisorState) -> str:
    """Return the HTML page for the current state. Never mutates anything."""
    if state.pairing_material:
        return _qr_page(state.pairing_material)
    if state.status is ConnectionStatus.CONNECTED:
        return _connected_page(state)
    return _loading_page(state)
