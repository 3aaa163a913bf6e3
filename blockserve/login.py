"""Login: reading the player's name, the login-success reply and entering play."""

from __future__ import annotations

import logging

from .mojang import format_uuid, get_skin_base64, get_uuid
from .play import join_game
from .players import PlayerStore
from .protocol import encode_varint, prepend_packet_length
from .session import ClientSession

logger = logging.getLogger(__name__)

LOGIN_SUCCESS_ID = 0x02
MAX_WIRE_USERNAME = 16
MAX_SESSION_USERNAME = 31
RAW_UUID_LENGTH = 32


def extract_username(packet: bytes) -> str:
    """The username in a login-start packet: a one-byte length, then the name."""
    if len(packet) < 2:
        raise ValueError("login packet too short")
    length = packet[1]
    if 2 + length > len(packet):
        raise ValueError(
            f"username length {length} exceeds packet of {len(packet)} bytes"
        )
    return bytes(packet[2:2 + length]).decode("utf-8", errors="replace")


def login_success_packet(formatted_uuid: str, username: str) -> bytes:
    """The framed login-success packet; the name is cut to 16 bytes."""
    uuid_bytes = formatted_uuid.encode("utf-8")
    name_bytes = username.encode("utf-8")[:MAX_WIRE_USERNAME]
    return prepend_packet_length(
        encode_varint(LOGIN_SUCCESS_ID)
        + encode_varint(len(uuid_bytes))
        + uuid_bytes
        + encode_varint(len(name_bytes))
        + name_bytes
    )


def send_login_success(
    session: ClientSession,
    uuid: str,
    formatted_uuid: str,
    username: str,
    store: PlayerStore,
) -> bytes:
    """Load or create the player's record, then send login success; return the packet."""
    packet = login_success_packet(formatted_uuid, username)
    skin = get_skin_base64(uuid)
    try:
        store.add_player(session, uuid, username, skin)
    except (ValueError, OSError) as exc:
        logger.error("could not load player %r: %s", username, exc)
    session.send_packet(packet)
    return packet


def handle_login(
    session: ClientSession,
    packet: bytes,
    sessions: list[ClientSession],
    store: PlayerStore,
) -> str:
    """Log ``session`` in and bring it into the game; return the hyphenated UUID.

    Raises ``LookupError`` when no UUID can be found for the username.
    """
    username = extract_username(packet)
    raw_uuid = get_uuid(username)
    if raw_uuid is None:
        raise LookupError(f"UUID lookup failed for {username!r}")
    session.username = username[:MAX_SESSION_USERNAME]
    formatted = format_uuid(raw_uuid)
    uuid = raw_uuid[:RAW_UUID_LENGTH]
    send_login_success(session, uuid, formatted, username, store)
    join_game(session, sessions, store)
    return formatted