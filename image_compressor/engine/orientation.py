"""EXIF orientation lookup for JPEG byte streams.

Only the first image-file-directory (IFD0) is inspected; that is where cameras
store tag 0x0112. Anything unexpected yields the neutral orientation.
"""

from __future__ import annotations

from image_compressor.logger import get_logger

from .binary_reader import ByteReader

_logger = get_logger("orientation")

DEFAULT_ORIENTATION = 1

_SOI = 0xFFD8
_APP1 = 0xFFE1
_SOS = 0xFFDA
_EXIF_SIGNATURE = b"Exif\x00\x00"
_LITTLE_ENDIAN = 0x4949  # "II"
_BIG_ENDIAN = 0x4D4D  # "MM"
_ORIENTATION_TAG = 0x0112
_IFD_ENTRY_SIZE = 12


def _orientation_from_tiff(reader: ByteReader, tiff_start: int) -> int | None:
    byte_order = reader.u16(tiff_start)
    if byte_order == _LITTLE_ENDIAN:
        little = True
    elif byte_order == _BIG_ENDIAN:
        little = False
    else:
        return None

    ifd_offset = reader.u32(tiff_start + 4, little)
    if ifd_offset is None:
        return None
    ifd_start = tiff_start + ifd_offset
    count = reader.u16(ifd_start, little)
    if count is None:
        return None

    for i in range(count):
        entry = ifd_start + 2 + i * _IFD_ENTRY_SIZE
        tag = reader.u16(entry, little)
        if tag is None:
            return None
        if tag == _ORIENTATION_TAG:
            # SHORT value stored inline in the first two bytes of the value field.
            return reader.u16(entry + 8, little)
    return None


def read_orientation(data: bytes | bytearray | memoryview) -> int:
    """Return the EXIF orientation code (1-8) stored in ``data``.

    Falls back to 1 for non-JPEG input, missing or malformed APP1/EXIF data,
    and values outside the defined range. Never raises.
    """
    reader = ByteReader(data)
    if reader.u16(0) != _SOI:
        return DEFAULT_ORIENTATION

    offset = 2
    while offset < len(reader):
        marker = reader.u16(offset)
        if marker is None:
            break
        offset += 2

        if marker == _SOS:
            break

        # Segment length (2 bytes) precedes the payload. An APP1 without the
        # Exif signature (XMP) is skipped like any other segment.
        if marker == _APP1 and reader.matches(offset + 2, _EXIF_SIGNATURE):
            value = _orientation_from_tiff(reader, offset + 2 + len(_EXIF_SIGNATURE))
            if value is None:
                _logger.debug("exif present but orientation not readable")
                break
            if 1 <= value <= 8:
                return value
            _logger.debug("orientation out of range: %s", value)
            break

        if (marker & 0xFF00) != 0xFF00:
            break

        length = reader.u16(offset)
        if length is None or length < 2:
            break
        offset += length

    return DEFAULT_ORIENTATION
