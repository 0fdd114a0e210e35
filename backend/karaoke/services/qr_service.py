import base64
from io import BytesIO
from urllib.parse import quote

import qrcode
import qrcode.image.svg


def control_url(frontend_origin: str, room_id: str, master_key: str) -> str:
    """Link a phone opens to register as a controller"""
    return f"{frontend_origin}/control/{quote(room_id, safe='')}?token={quote(master_key, safe='')}"


def qr_data_url(data: str) -> str:
    """Render ``data`` as a QR code and return it as an SVG data URL"""
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
