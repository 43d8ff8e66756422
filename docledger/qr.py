import io

import cv2
import numpy as np
import qrcode
from PIL import Image


def render_qr_png(data: str) -> bytes:
    """Encode `data` as a PNG QR code."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def scan_qr_codes(img: Image.Image) -> list[str]:
    """Decode every QR code found in a PIL image.

    Tries the image as-is first, then a grayscale pass, since scanned copies
    often only decode after the colour channels are dropped.
    """
    detector = cv2.QRCodeDetector()
    found: list[str] = []

    rgb = np.array(img.convert("RGB"))
    candidates = [cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR), cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)]
    for frame in candidates:
        ok, decoded, _points, _codes = detector.detectAndDecodeMulti(frame)
        if ok:
            for text in decoded:
                if text and text not in found:
                    found.append(text)
        if found:
            break

    if not found:
        text, _points, _code = detector.detectAndDecode(candidates[1])
        if text:
            found.append(text)
    return found
