import struct

import pytest

from image_compressor.engine.orientation import read_orientation
from tests.helpers.jpeg import EOI, SOI, exif_segment, header_only, jfif_segment, segment


@pytest.mark.parametrize("code", range(1, 9))
@pytest.mark.parametrize("little_endian", [True, False])
def test_reads_each_orientation_code(code, little_endian):
    assert read_orientation(header_only(code, little_endian)) == code


def test_exif_directly_after_soi():
    assert read_orientation(header_only(6, with_jfif=False)) == 6


def test_orientation_after_several_tags():
    data = SOI + exif_segment(8, leading_tags=5) + EOI
    assert read_orientation(data) == 8


def test_xmp_app1_before_exif_is_skipped():
    xmp = segment(0xFFE1, b"http://ns.adobe.com/xap/1.0/\x00<x:xmpmeta/>")
    assert read_orientation(SOI + xmp + exif_segment(3) + EOI) == 3


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\xff",
        b"\x89PNG\r\n\x1a\n" + b"\x00" * 32,
        SOI,
        SOI + jfif_segment() + EOI,
        SOI + b"\x00\x10garbage",
    ],
)
def test_non_exif_input_defaults_to_one(data):
    assert read_orientation(data) == 1


@pytest.mark.parametrize("cut", [6, 10, 14, 18, 22, 30, 40])
def test_truncated_exif_defaults_to_one(cut):
    full = SOI + exif_segment(6, leading_tags=2)
    # Trailing bytes must not reach the orientation entry.
    assert read_orientation(full[:cut]) == 1


def test_bad_byte_order_defaults_to_one():
    seg = bytearray(exif_segment(6))
    seg[10:12] = b"XX"
    assert read_orientation(SOI + bytes(seg) + EOI) == 1


def test_ifd_offset_out_of_range_defaults_to_one():
    seg = bytearray(exif_segment(6))
    seg[14:18] = struct.pack("<I", 0xFFFFFF)
    assert read_orientation(SOI + bytes(seg) + EOI) == 1


def test_entry_count_larger_than_buffer_defaults_to_one():
    seg = bytearray(exif_segment(6, leading_tags=0))
    # Claim 500 entries; the only real one is Orientation so patch its tag out.
    seg[18:20] = struct.pack("<H", 500)
    seg[20:22] = b"\x00\x00"
    assert read_orientation(SOI + bytes(seg)) == 1


def test_value_outside_range_defaults_to_one():
    assert read_orientation(header_only(9)) == 1
    assert read_orientation(header_only(0)) == 1


def test_segment_length_overflow_defaults_to_one():
    data = SOI + struct.pack(">HH", 0xFFE0, 0xFFFF) + b"\x00" * 4
    assert read_orientation(data) == 1
