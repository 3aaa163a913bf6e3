"""Wire-format helpers: VarInts, packet framing and big-endian numbers."""

from __future__ import annotations

import struct
import time

MAX_VARINT_BYTES = 5


class VarIntError(ValueError):
    """Raised when a VarInt is malformed or cut short."""


def encode_varint(value: int) -> bytes:
    """Encode ``value`` as a protocol VarInt (negative values as 32-bit two's complement)."""
    value &= 0xFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a VarInt at ``offset``; return ``(value, offset_after)``."""
    value = 0
    for position in range(MAX_VARINT_BYTES):
        if offset >= len(data):
            raise VarIntError("truncated VarInt")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << (7 * position)
        if not byte & 0x80:
            value &= 0xFFFFFFFF
            if value >= 1 << 31:
                value -= 1 << 32
            return value, offset
    raise VarIntError(f"VarInt is longer than {MAX_VARINT_BYTES} bytes")


def prepend_packet_length(payload: bytes) -> bytes:
    """Frame ``payload`` by prefixing its length as a VarInt."""
    return encode_varint(len(payload)) + bytes(payload)


def _unpack(fmt: str, data: bytes, offset: int) -> float:
    try:
        return struct.unpack_from(fmt, data, offset)[0]
    except struct.error as exc:
        raise ValueError(f"not enough data at offset {offset}") from exc


def read_double_be(data: bytes, offset: int = 0) -> float:
    """Read a big-endian IEEE 754 double at ``offset``."""
    return _unpack(">d", data, offset)


def read_float_be(data: bytes, offset: int = 0) -> float:
    """Read a big-endian IEEE 754 single at ``offset``."""
    return _unpack(">f", data, offset)


def swap_short(value: int) -> int:
    """Swap the two bytes of a 16-bit value."""
    value &= 0xFFFF
    return ((value >> 8) & 0xFF) | ((value & 0xFF) << 8)


def pad_to_alignment(data: bytes, alignment: int) -> bytes:
    """Shift ``data`` forward so its length is a multiple of ``alignment``.

    The gap opened at the front holds a copy of the leading bytes of
    ``data``, zero-filled where ``data`` is shorter than the gap.
    """
    if alignment <= 0 or alignment & (alignment - 1):
        raise ValueError("alignment must be a power of 2")
    pad = -len(data) % alignment
    if not pad:
        return bytes(data)
    front = bytes(data[:pad]).ljust(pad, b"\x00")
    return front + bytes(data)


def current_time_millis() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000