"""Handshake parsing and the server-list status and ping exchange."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from .protocol import decode_varint, encode_varint, prepend_packet_length
from .session import ClientSession, ConnectionState

logger = logging.getLogger(__name__)

MAX_ADDRESS_LENGTH = 255
VERSION_NAME = "1.15.2"
PROTOCOL_VERSION = 578
MAX_PLAYERS = 5
SAMPLE_PLAYER_ID = "4566e69f-c907-48ee-8d71-d7ba5aa00d20"
DESCRIPTION = "Block server"
STATUS_RESPONSE_ID = 0x00
PONG_HEADER = b"\x09\x01"

_NEXT_STATES = {1: ConnectionState.STATUS, 2: ConnectionState.LOGIN}


@dataclass(frozen=True)
class Handshake:
    """Fields of a client's handshake packet."""

    protocol_version: int
    server_address: str
    server_port: int
    next_state: int


def parse_handshake(data: bytes) -> Handshake:
    """Parse a handshake packet body that starts with its packet id."""
    offset = 1
    protocol_version, offset = decode_varint(data, offset)
    length, offset = decode_varint(data, offset)
    if length > MAX_ADDRESS_LENGTH:
        raise ValueError("server address too long")
    if length < 0 or offset + length + 2 > len(data):
        raise ValueError("truncated handshake packet")
    address = bytes(data[offset:offset + length]).decode("utf-8", errors="replace")
    offset += length
    port = int.from_bytes(data[offset:offset + 2], "big")
    offset += 2
    next_state, _ = decode_varint(data, offset)
    return Handshake(protocol_version, address, port, next_state)


def handle_handshake(session: ClientSession, data: bytes) -> Handshake:
    """Parse a handshake and move ``session`` to the state it asks for."""
    handshake = parse_handshake(data)
    try:
        session.state = _NEXT_STATES[handshake.next_state]
    except KeyError:
        raise ValueError(f"invalid next state: {handshake.next_state}") from None
    return handshake


def build_status_response(online_count: int) -> bytes:
    """The framed status response advertising ``online_count`` players."""
    status = {
        "version": {"name": VERSION_NAME, "protocol": PROTOCOL_VERSION},
        "players": {
            "max": MAX_PLAYERS,
            "online": int(online_count),
            "sample": [{"name": "", "id": SAMPLE_PLAYER_ID}],
        },
        "description": {"text": DESCRIPTION},
        "enforcesSecureChat": False,
    }
    body = json.dumps(status, separators=(",", ":")).encode("utf-8")
    return prepend_packet_length(
        bytes([STATUS_RESPONSE_ID]) + encode_varint(len(body)) + body
    )


def send_status_response(session: ClientSession, online_count: int) -> int:
    """Send the status response to ``session``; return bytes sent."""
    return session.send_packet(build_status_response(online_count))


def pong_packet(ping_packet: bytes) -> bytes:
    """The 10-byte pong echoing the 8-byte payload found at offset 4."""
    payload = bytes(ping_packet[4:12]).ljust(8, b"\x00")
    return PONG_HEADER + payload


def handle_ping_pong(session: ClientSession) -> bool:
    """Read a ping from the socket and answer it; return whether a pong was sent."""
    try:
        ping = session.sock.recv(12)
    except OSError as exc:
        logger.error("receiving ping failed: %s", exc)
        return False
    if not ping:
        return False
    try:
        session.sock.send(pong_packet(ping))
    except OSError as exc:
        logger.error("sending pong failed: %s", exc)
        return False
    return True