import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(box_size=8, border=4, error_correction=ERROR_CORRECT_M)
    qr.add_data(data)
    qr.make(fit=True)

    buf = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buf)
    return buf.getvalue()


def qr_data_url(short_url: str) -> str:
    """Scannable PNG of the short URL, as a data: URL the client can render directly."""
    encoded = base64.b64encode(render_qr_png(short_url)).decode()
    return f"data:image/png;base64,{encoded}"
