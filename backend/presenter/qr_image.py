"""
QR payload -> PNG data URI.

Pure apart from CPU work: no state, no IO beyond an in-memory buffer.
"""

from __future__ import annotations

import base64
import io

import qrcode

from constants import QR_BORDER_MODULES, QR_IMAGE_WIDTH_PX


def render_qr_png(payload: str, *, width_px: int = QR_IMAGE_WIDTH_PX) -> bytes:
    """
    Encode `payload` as a PNG QR code roughly `width_px` wide.

    The module size is chosen after fitting the version, so long pairing
    payloads still come out near the requested width instead of growing.
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        border=QR_BORDER_MODULES,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    modules = qr.modules_count + 2 * QR_BORDER_MODULES
    qr.box_size = max(1, width_px // modules)

    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_uri(payload: str) -> str:
    png = render_qr_png(payload)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
