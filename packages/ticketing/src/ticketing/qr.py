"""QR code rendering for tickets."""

import io

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

QR_SIZE = 300
QR_BORDER = 1
QR_FOLDER = "qr-codes"


def render_qr_png(data: str, size: int = QR_SIZE, border: int = QR_BORDER) -> bytes:
    """Render data as a black-on-white PNG of size x size pixels."""
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    image = image.resize((size, size), Image.NEAREST)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def qr_object_path(registration_id, timestamp_ms: int) -> str:
    """Storage key for a ticket QR image."""
    return f"{QR_FOLDER}/qr-{registration_id}-{timestamp_ms}.png"
