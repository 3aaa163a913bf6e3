import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from blockserve.mojang import (
    extract_skin_value,
    extract_uuid_from_profile,
    format_uuid,
    get_skin_base64,
    get_uuid,
    parse_uuid_bytes,
)

FORMATTED = "4566e69f-c907-48ee-8d71-d7ba5aa00d20"
RAW = FORMATTED.replace("-", "")


def _response(body: bytes) -> MagicMock:
    opener = MagicMock()
    opener.return_value.__enter__.return_value.read.return_value = body
    return opener


def test_format_uuid():
    assert format_uuid(RAW) == FORMATTED


def test_format_uuid_round_trip():
    assert format_uuid(format_uuid(RAW).replace("-", "")) == FORMATTED


def test_format_uuid_ignores_extra_text():
    assert format_uuid(RAW + '",\n') == FORMATTED


def test_format_uuid_too_short():
    with pytest.raises(ValueError):
        format_uuid(RAW[:20])


def test_parse_uuid_bytes():
    assert parse_uuid_bytes(RAW) == bytes.fromhex(RAW)


def test_parse_uuid_bytes_uppercase():
    assert parse_uuid_bytes(RAW.upper()) == bytes.fromhex(RAW)


def test_parse_uuid_bytes_invalid_digits_are_zero():
    assert parse_uuid_bytes("zz" * 16) == bytes(16)


def test_parse_uuid_bytes_short_input_is_zero_filled():
    result = parse_uuid_bytes(RAW[:8])
    assert len(result) == 16
    assert result[:4] == bytes.fromhex(RAW[:8])
    assert result[4:] == bytes(12)


def test_extract_uuid_from_profile():
    response = '{\n  "id" : "' + RAW + '",\n  "name" : "alice"\n}'
    result = extract_uuid_from_profile(response)
    assert len(result) == 36
    assert result[:32] == RAW


def test_extract_uuid_from_short_profile():
    assert extract_uuid_from_profile("{}") is None


def test_extract_skin_value():
    response = '{"id":"x","properties":[{"name":"textures","value" : "abc=="}]}'
    assert extract_skin_value(response) == "abc=="


def test_extract_skin_value_missing_key():
    assert extract_skin_value('{"name":"textures"}') is None


def test_extract_skin_value_no_opening_quote():
    assert extract_skin_value('{"value": 12}') is None


def test_extract_skin_value_no_closing_quote():
    assert extract_skin_value('{"value": "abc') is None


def test_get_uuid_uses_profile_endpoint():
    body = ('{\n  "id" : "' + RAW + '",\n  "name" : "alice"\n}').encode()
    opener = _response(body)
    with patch("urllib.request.urlopen", opener):
        result = get_uuid("alice")
    assert result[:32] == RAW
    url = opener.call_args.args[0]
    assert url.endswith("/alice")


def test_get_uuid_network_failure():
    opener = MagicMock(side_effect=urllib.error.URLError("down"))
    with patch("urllib.request.urlopen", opener):
        assert get_uuid("alice") is None


def test_get_skin_base64():
    body = b'{"properties":[{"name":"textures","value":"c2tpbg=="}]}'
    opener = _response(body)
    with patch("urllib.request.urlopen", opener):
        assert get_skin_base64(RAW) == "c2tpbg=="
    assert opener.call_args.args[0].endswith(RAW)


def test_get_skin_base64_network_failure():
    opener = MagicMock(side_effect=OSError("unreachable"))
    with patch("urllib.request.urlopen", opener):
        assert get_skin_base64(RAW) is None