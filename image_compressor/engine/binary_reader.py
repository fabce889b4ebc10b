"""Bounds-checked reads over an immutable byte buffer.

Every accessor returns ``None`` when the requested range falls outside the
buffer instead of raising, so header parsers can treat "out of range" the same
way as "not found".
"""

from __future__ import annotations

import struct

_U16 = {True: struct.Struct("<H"), False: struct.Struct(">H")}
_U32 = {True: struct.Struct("<I"), False: struct.Struct(">I")}


class ByteReader:
    """Fail-soft random access reader over ``bytes``/``bytearray``/``memoryview``."""

    __slots__ = ("_buf",)

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._buf = memoryview(data).cast("B")

    def __len__(self) -> int:
        return len(self._buf)

    def in_bounds(self, offset: int, size: int) -> bool:
        return offset >= 0 and size >= 0 and offset + size <= len(self._buf)

    def u8(self, offset: int) -> int | None:
        if not self.in_bounds(offset, 1):
            return None
        return self._buf[offset]

    def u16(self, offset: int, little_endian: bool = False) -> int | None:
        if not self.in_bounds(offset, 2):
            return None
        return _U16[little_endian].unpack_from(self._buf, offset)[0]

    def u32(self, offset: int, little_endian: bool = False) -> int | None:
        if not self.in_bounds(offset, 4):
            return None
        return _U32[little_endian].unpack_from(self._buf, offset)[0]

    def slice(self, offset: int, size: int) -> bytes | None:
        if not self.in_bounds(offset, size):
            return None
        return bytes(self._buf[offset : offset + size])

    def matches(self, offset: int, expected: bytes) -> bool:
        return self.slice(offset, len(expected)) == expected
