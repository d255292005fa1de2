"""Image encoding helpers."""

import base64
from io import BytesIO

from PIL import Image


def detect_mime_type(data: bytes) -> str:
    """Detect the MIME type of image bytes from their magic number."""
    header = data[:12]
    if header[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if header[:4] == b"\x89PNG":
        return "image/png"
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "image/webp"
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def to_data_url(data: bytes) -> str:
    """Encode image bytes as a base64 data URL."""
    encoded = base64.b64encode(data).decode("utf-8")
    return f"data:{detect_mime_type(data)};base64,{encoded}"


def pil_to_bytes(image: Image.Image, image_format: str = "JPEG", quality: int = 90) -> bytes:
    """Serialize a PIL image, falling back to JPEG for formats Pillow cannot write."""
    fmt = (image_format or "JPEG").upper()
    if fmt not in ("JPEG", "PNG", "WEBP", "GIF"):
        fmt = "JPEG"
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = BytesIO()
    if fmt == "JPEG":
        image.save(buffer, format=fmt, quality=quality)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()
