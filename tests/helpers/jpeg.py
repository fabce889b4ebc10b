"""Builders for JPEG byte streams with hand-made EXIF orientation data."""

from __future__ import annotations

import io
import struct

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"

_MAKE_TAG = 0x010F
_ORIENTATION_TAG = 0x0112
_ASCII = 2
_SHORT = 3

# Quadrant colours used to track where source corners end up.
RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def tiff_block(orientation: int, little_endian: bool = True, leading_tags: int = 1) -> bytes:
    """TIFF header + IFD0 with ``leading_tags`` Make entries before Orientation."""
    bo = "<" if little_endian else ">"
    header = (b"II" if little_endian else b"MM") + struct.pack(bo + "HI", 42, 8)
    entries = b""
    for _ in range(leading_tags):
        entries += struct.pack(bo + "HHI", _MAKE_TAG, _ASCII, 4) + b"ACME"
    entries += struct.pack(bo + "HHIH", _ORIENTATION_TAG, _SHORT, 1, orientation) + b"\x00\x00"
    count = leading_tags + 1
    return header + struct.pack(bo + "H", count) + entries + struct.pack(bo + "I", 0)


def segment(marker: int, payload: bytes) -> bytes:
    return struct.pack(">HH", marker, len(payload) + 2) + payload


def exif_segment(orientation: int, little_endian: bool = True, leading_tags: int = 1) -> bytes:
    return segment(0xFFE1, b"Exif\x00\x00" + tiff_block(orientation, little_endian, leading_tags))


def jfif_segment() -> bytes:
    return segment(0xFFE0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00")


def header_only(orientation: int, little_endian: bool = True, with_jfif: bool = True) -> bytes:
    """Minimal marker stream (no image data) carrying an orientation tag."""
    body = jfif_segment() if with_jfif else b""
    return SOI + body + exif_segment(orientation, little_endian) + EOI


def with_orientation(jpeg: bytes, orientation: int) -> bytes:
    """Splice an EXIF APP1 carrying ``orientation`` right after SOI."""
    assert jpeg.startswith(SOI)
    return SOI + exif_segment(orientation) + jpeg[2:]


def quadrant_image(width: int = 40, height: int = 20):
    """RGB image with red/green top and blue/white bottom quadrants."""
    from PIL import Image

    img = Image.new("RGB", (width, height))
    half_w, half_h = width // 2, height // 2
    img.paste(RED, (0, 0, half_w, half_h))
    img.paste(GREEN, (half_w, 0, width, half_h))
    img.paste(BLUE, (0, half_h, half_w, height))
    img.paste(WHITE, (half_w, half_h, width, height))
    return img


def encode(img, fmt: str = "JPEG", **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, fmt, **kwargs)
    return buf.getvalue()


def quadrant_jpeg(orientation: int | None = None, width: int = 40, height: int = 20) -> bytes:
    data = encode(quadrant_image(width, height), "JPEG", quality=95, subsampling=0)
    return with_orientation(data, orientation) if orientation is not None else data


def closest(rgb, candidates=(RED, GREEN, BLUE, WHITE)):
    return min(candidates, key=lambda c: sum((int(a) - int(b)) ** 2 for a, b in zip(rgb[:3], c)))
