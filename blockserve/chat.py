"""Chat messages and join/leave announcements."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from .protocol import decode_varint, encode_varint, prepend_packet_length
from .session import ClientSession, ConnectionState

logger = logging.getLogger(__name__)

CHAT_PACKET_ID = 0x0F
CHAT_TYPE = 0x00
SYSTEM_TYPE = 0x01
MAX_JSON_LENGTH = 511


def _json(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def _checked(text: str) -> str:
    if len(text.encode("utf-8")) > MAX_JSON_LENGTH:
        raise ValueError("chat JSON is too long")
    return text


def chat_packet(json_text: str, message_type: int) -> bytes:
    """A framed clientbound chat packet carrying ``json_text``."""
    body = json_text.encode("utf-8")
    return prepend_packet_length(
        bytes([CHAT_PACKET_ID]) + encode_varint(len(body)) + body + bytes([message_type & 0xFF])
    )


def extract_message(packet: bytes) -> str:
    """The string that follows the packet id in a serverbound chat packet."""
    length, offset = decode_varint(packet, 1)
    if length < 0 or offset + length > len(packet):
        raise ValueError(
            f"message length exceeds packet bounds: {offset} + {length} > {len(packet)}"
        )
    return bytes(packet[offset:offset + length]).decode("utf-8", errors="replace")


def _send_to(targets: Iterable[ClientSession], packet: bytes) -> int:
    count = 0
    for target in targets:
        target.send_packet(packet)
        count += 1
    return count


def broadcast_chat_message(
    sender: ClientSession, sessions: Iterable[ClientSession], message: str
) -> int:
    """Send chat JSON ``message`` to every connected session; return recipients."""
    packet = chat_packet(message, CHAT_TYPE)
    return _send_to((s for s in sessions if s.sock is not None), packet)


def handle_chat_packet(
    session: ClientSession, packet: bytes, sessions: Iterable[ClientSession]
) -> str:
    """Relay a player's chat message to everyone; return the message text."""
    message = extract_message(packet)
    text = _checked(
        _json(
            {
                "translate": "chat.type.text",
                "with": [{"text": session.username}, {"text": message}],
            }
        )
    )
    broadcast_chat_message(session, sessions, text)
    logger.info("%s: %s", session.username, message)
    return message


def send_player_joined_message(
    new_session: ClientSession, sessions: Iterable[ClientSession]
) -> int:
    """Announce ``new_session``'s arrival to players in play; return recipients."""
    text = _checked(
        _json({"text": f"{new_session.player.username} has joined the game.", "color": "yellow"})
    )
    packet = chat_packet(text, SYSTEM_TYPE)
    sent = _send_to(
        (s for s in sessions if s.sock is not None and s.state == ConnectionState.PLAY),
        packet,
    )
    logger.info("%s has joined the game.", new_session.player.username)
    return sent


def send_player_disconnected(
    session: ClientSession, sessions: Iterable[ClientSession]
) -> int:
    """Tell the other players in play that ``session`` left; return recipients."""
    if session.state != ConnectionState.PLAY:
        return 0
    text = _json({"text": f"{session.player.username} left the game.", "color": "yellow"})
    packet = chat_packet(text, SYSTEM_TYPE)
    return _send_to(
        (
            s
            for s in sessions
            if s is not session and s.state == ConnectionState.PLAY and s.sock is not None
        ),
        packet,
    )