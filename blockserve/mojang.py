"""Profile lookups: player UUIDs and skin texture data."""

from __future__ import annotations

import logging
import re
import urllib.parse
import urllib.request

logger = logging.getLogger(__name__)

PROFILE_API = "https://api.mojang.com/users/profiles/minecraft/"
SESSION_API = "https://sessionserver.mojang.com/session/minecraft/profile/"
UUID_OFFSET = 12
UUID_TEXT_LENGTH = 36
REQUEST_TIMEOUT = 10

_HEX_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?)([0-9a-fA-F]*)")


def _fetch(url: str) -> str:
    try:
        with urllib.request.urlopen(url, timeout=REQUEST_TIMEOUT) as response:
            return response.read().decode("utf-8", errors="replace")
    except OSError as exc:
        logger.error("request to %s failed: %s", url, exc)
        return ""


def extract_uuid_from_profile(response: str) -> str | None:
    """Take the UUID text at its fixed position in a profile response."""
    if len(response) <= UUID_OFFSET:
        return None
    return response[UUID_OFFSET : UUID_OFFSET + UUID_TEXT_LENGTH]


def get_uuid(username: str) -> str | None:
    """Look up the UUID text for ``username``; ``None`` if none came back."""
    url = PROFILE_API + urllib.parse.quote(username, safe="")
    return extract_uuid_from_profile(_fetch(url))


def extract_skin_value(response: str) -> str | None:
    """Return the string after the first ``"value"`` key in ``response``."""
    key = '"value"'
    pos = response.find(key)
    if pos < 0:
        logger.error('"value" key not found in response')
        return None
    pos += len(key)
    while pos < len(response) and response[pos] in " \t\n:":
        pos += 1
    if pos >= len(response) or response[pos] != '"':
        logger.error("no opening quote after value key")
        return None
    end = response.find('"', pos + 1)
    if end < 0:
        logger.error("no closing quote for value string")
        return None
    return response[pos + 1 : end]


def get_skin_base64(uuid: str) -> str | None:
    """Fetch the base64 texture property for the player with ``uuid``."""
    url = SESSION_API + urllib.parse.quote(uuid, safe="")
    return extract_skin_value(_fetch(url))


def format_uuid(raw_uuid: str) -> str:
    """Insert hyphens into a 32-digit UUID: 8-4-4-4-12."""
    if len(raw_uuid) < 32:
        raise ValueError(f"UUID needs 32 hex digits, got {len(raw_uuid)}")
    return "-".join(
        (raw_uuid[0:8], raw_uuid[8:12], raw_uuid[12:16], raw_uuid[16:20], raw_uuid[20:32])
    )


def _hex_pair(pair: str) -> int:
    pair = pair.split("\0", 1)[0]
    match = _HEX_PREFIX.match(pair)
    sign, digits = match.groups()
    value = int(digits, 16) if digits else 0
    if sign == "-":
        value = -value
    return value & 0xFF


def parse_uuid_bytes(uuid_str: str) -> bytes:
    """Turn the first 32 hex digits of an unhyphenated UUID into 16 bytes."""
    text = uuid_str.ljust(32, "\0")
    return bytes(_hex_pair(text[2 * i : 2 * i + 2]) for i in range(16))