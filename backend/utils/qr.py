# backend/utils/qr.py
import base64
import io
from urllib.parse import quote, urlparse

import qrcode
from qrcode.constants import ERROR_CORRECT_H

SCAN_PATH = "/api/inventory/scan/"


# Build the scan link printed on an item's label
def build_scan_url(base_url: str, item_code: str) -> str:
    return f"{base_url.rstrip('/')}{SCAN_PATH}{quote(item_code, safe='')}"


def is_scan_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc) and SCAN_PATH in parsed.path


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=1)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(data: str) -> str:
    return "data:image/png;base64," + base64.b64encode(render_qr_png(data)).decode("ascii")
