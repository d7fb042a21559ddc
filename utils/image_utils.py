"""Image encoding helpers for the recognition payload (imageData)."""

from __future__ import annotations

import base64
import io
from pathlib import Path

from PIL import Image

PAYLOAD_IMAGE_MAX_PX = 1024
PAYLOAD_JPEG_QUALITY = 85


def _resize_to_max_px(img: Image.Image, max_px: int = PAYLOAD_IMAGE_MAX_PX) -> Image.Image:
    """Resize image so longest side is at most max_px."""
    w, h = img.size
    if max(w, h) <= max_px:
        return img
    ratio = max_px / max(w, h)
    return img.resize((int(w * ratio), int(h * ratio)), Image.Resampling.LANCZOS)


def image_bytes_to_payload(image_bytes: bytes, max_px: int = PAYLOAD_IMAGE_MAX_PX) -> str:
    """Re-encode any Pillow-readable image as size-limited JPEG, base64 text."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        rgb = _resize_to_max_px(img.convert("RGB"), max_px)
        buf = io.BytesIO()
        rgb.save(buf, format="JPEG", quality=PAYLOAD_JPEG_QUALITY)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def image_payload_from_path(path: str | Path, max_px: int = PAYLOAD_IMAGE_MAX_PX) -> str:
    """Image file -> imageData text. Raises FileNotFoundError if missing."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Image not found: {p}")
    return image_bytes_to_payload(p.read_bytes(), max_px)
