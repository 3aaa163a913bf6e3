import struct
import time

import pytest

from blockserve.protocol import (
    VarIntError,
    current_time_millis,
    decode_varint,
    encode_varint,
    pad_to_alignment,
    prepend_packet_length,
    read_double_be,
    read_float_be,
    swap_short,
)


@pytest.mark.parametrize(
    "value", [0, 1, 127, 128, 255, 300, 16384, 2097151, 2147483647, -1, -2147483648]
)
def test_varint_round_trip(value):
    encoded = encode_varint(value)
    decoded, offset = decode_varint(encoded)
    assert decoded == value
    assert offset == len(encoded)


def test_encode_varint_zero():
    assert encode_varint(0) == b"\x00"


def test_encode_varint_two_bytes():
    assert encode_varint(300) == b"\xac\x02"


def test_negative_varint_uses_five_bytes():
    assert len(encode_varint(-1)) == 5


def test_decode_varint_with_offset():
    data = b"\xff" + encode_varint(4096) + b"rest"
    value, offset = decode_varint(data, 1)
    assert value == 4096
    assert data[offset:] == b"rest"


def test_decode_varint_too_long():
    with pytest.raises(VarIntError):
        decode_varint(b"\x80" * 6)


def test_decode_varint_truncated():
    with pytest.raises(VarIntError):
        decode_varint(b"\x80\x80")


def test_decode_varint_empty():
    with pytest.raises(VarIntError):
        decode_varint(b"")


@pytest.mark.parametrize("size", [0, 1, 127, 128, 5000])
def test_prepend_packet_length(size):
    payload = bytes(range(256)) * (size // 256) + bytes(size % 256)
    framed = prepend_packet_length(payload)
    length, offset = decode_varint(framed)
    assert length == len(payload)
    assert framed[offset:] == payload


def test_read_double_be():
    data = b"\x00" + struct.pack(">d", 1.5)
    assert read_double_be(data, 1) == 1.5


def test_read_float_be():
    data = struct.pack(">f", -2.25)
    assert read_float_be(data) == -2.25


def test_read_double_short_data():
    with pytest.raises(ValueError):
        read_double_be(b"\x00\x01", 0)


def test_swap_short_value():
    assert swap_short(0x0102) == 0x0201


@pytest.mark.parametrize("value", [0, 1, 0x00FF, 0xABCD, 0xFFFF])
def test_swap_short_involution(value):
    assert swap_short(swap_short(value)) == value


def test_pad_to_alignment_multiple():
    data = b"abcdefghijkl"
    result = pad_to_alignment(data, 8)
    assert len(result) % 8 == 0
    assert result.endswith(data)
    gap = len(result) - len(data)
    assert result[:gap] == data[:gap]


def test_pad_to_alignment_short_data():
    data = b"ab"
    result = pad_to_alignment(data, 8)
    assert len(result) == 8
    front = result[: -len(data)]
    assert front.startswith(data)
    assert set(front[len(data):]) == {0}


def test_pad_to_alignment_already_aligned():
    data = b"12345678"
    assert pad_to_alignment(data, 8) == data


@pytest.mark.parametrize("alignment", [0, 3, 6, -4])
def test_pad_to_alignment_rejects_non_power_of_two(alignment):
    with pytest.raises(ValueError):
        pad_to_alignment(b"abc", alignment)


def test_current_time_millis_close_to_clock():
    before = int(time.time() * 1000)
    now = current_time_millis()
    after = int(time.time() * 1000)
    assert before - 1 <= now <= after + 1