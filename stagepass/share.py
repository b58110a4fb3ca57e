"""
Share helpers for StagePass.

Builds the join link for a stage and renders it as a QR code image.
"""

import io
import logging
from urllib.parse import urlencode

import qrcode
from PIL import Image

logger = logging.getLogger(__name__)


def build_join_url(base_url: str, join_code: str) -> str:
    """Link that opens the live room for a join code."""
    return f"{base_url.rstrip('/')}/live-room?{urlencode({'joinCode': join_code})}"


def generate_qr_png(url: str, size: int = 240) -> bytes:
    """
    Render a QR code PNG for the given URL.

    Args:
        url: The URL to encode in the QR code
        size: Edge length of the image in pixels

    Returns:
        PNG bytes
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img = img.resize((size, size), Image.Resampling.NEAREST)

    buffer = io.BytesIO()
    img.save(buffer, "PNG")
    logger.debug("Generated QR code for %s (size=%dpx)", url, size)
    return buffer.getvalue()
