"""Play state: joining, world data, the player list, spawning and per-tick relays."""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterable

from .chat import handle_chat_packet, send_player_disconnected, send_player_joined_message
from .mojang import parse_uuid_bytes
from .movement import (
    angle_to_byte,
    broadcast_movement,
    handle_player_movement,
    handle_player_position,
    handle_player_position_rotation,
    handle_player_rotation,
    send_player_arm_swing,
)
from .players import PlayerStore
from .protocol import current_time_millis, encode_varint, pad_to_alignment, prepend_packet_length
from .session import ClientSession, ConnectionState

logger = logging.getLogger(__name__)

JOIN_GAME_ID = 0x26
CHUNK_DATA_ID = 0x22
POSITION_LOOK_ID = 0x36
KEEP_ALIVE_ID = 0x21
PLAYER_INFO_ID = 0x34
DESTROY_ENTITIES_ID = 0x38
SPAWN_PLAYER_ID = 0x05

PLAYER_INFO_ADD = 0x00
PLAYER_INFO_REMOVE = 0x04

JOIN_ENTITY_ID = 214
JOIN_GAMEMODE = 1
JOIN_DIMENSION = 0
JOIN_SEED_HASH = 1234567890
JOIN_MAX_PLAYERS = 5
JOIN_LEVEL_TYPE = 0
JOIN_VIEW_DISTANCE = 8
JOIN_REDUCED_DEBUG = 0
JOIN_RESPAWN_SCREEN = 1

TELEPORT_ID = 0x0A
INFO_GAMEMODE = 1
INFO_PING = 0

HEIGHTMAP_NAME = b"MOTION_BLOCKING"
HEIGHTMAP_LONGS = 36
BIOME_COUNT = 1024
PLAINS_BIOME = 1
SECTION_LONGS = 512
STONE_LONG = b"\x01" * 8
CHUNK_SIZE = 16

VIEW_DISTANCE_SQ = 100.0

_MOVEMENT_HANDLERS = {
    0x11: handle_player_position,
    0x12: handle_player_position_rotation,
    0x13: handle_player_rotation,
    0x14: handle_player_movement,
}
_IGNORED_PACKETS = {0x00, 0x05, 0x0B, 0x0F}
ARM_SWING_ID = 0x2A
CHAT_ID = 0x03
BEACON_ID = 0x22


def _encode_string(text: str) -> bytes:
    data = text.encode("utf-8")
    return encode_varint(len(data)) + data


def join_game(session: ClientSession, sessions: list[ClientSession], store: PlayerStore) -> bytes:
    """Send the join-game packet, bring ``session`` into play and place it in the world."""
    payload = struct.pack(
        "<BiBiqBBBBB",
        JOIN_GAME_ID,
        JOIN_ENTITY_ID,
        JOIN_GAMEMODE,
        JOIN_DIMENSION,
        JOIN_SEED_HASH,
        JOIN_MAX_PLAYERS,
        JOIN_LEVEL_TYPE,
        JOIN_VIEW_DISTANCE,
        JOIN_REDUCED_DEBUG,
        JOIN_RESPAWN_SCREEN,
    )
    packet = prepend_packet_length(payload)
    session.send_packet(packet)
    on_player_join(session, sessions, store)
    player_pos_look(session)
    return packet


def on_player_join(
    new_session: ClientSession, sessions: list[ClientSession], store: PlayerStore
) -> None:
    """Put ``new_session`` into play and introduce it and the others to each other."""
    new_session.state = ConnectionState.PLAY
    player_info_packet_join(new_session, sessions, store)
    send_existing_players_to_newcomer(new_session, sessions, store)
    send_newcomer_to_existing_players(new_session, sessions, store)
    send_player_joined_message(new_session, sessions)
    for other in list(sessions):
        if other is not new_session and other.state == ConnectionState.PLAY:
            spawn_player_packet(other, new_session)
            spawn_player_packet(new_session, other)


def on_player_disconnect(
    session: ClientSession, sessions: list[ClientSession], store: PlayerStore
) -> None:
    """Remove ``session``'s player from everyone's view and close its connection."""
    player_info_packet_disconnect(session, sessions, store)
    send_player_disconnected(session, sessions)
    destroy_disconnect_player(session, sessions)

    if session.sock is not None:
        try:
            session.sock.close()
        except OSError as exc:
            logger.error("closing socket failed: %s", exc)
    session.sock = None
    session.state = ConnectionState.NONE
    session.player.eid = -1
    session.username = ""


def destroy_disconnect_player(session: ClientSession, sessions: Iterable[ClientSession]) -> int:
    """Tell the other players in play to destroy ``session``'s entity; return recipients."""
    packet = prepend_packet_length(
        encode_varint(DESTROY_ENTITIES_ID) + bytes([0x01]) + encode_varint(session.player.eid)
    )
    count = 0
    for other in sessions:
        if other is not session and other.state == ConnectionState.PLAY:
            other.send_packet(packet)
            count += 1
    return count


def stone_platform_chunk(chunk_x: int, chunk_z: int) -> bytes:
    """The framed chunk-data packet for a one-section stone chunk at ``(chunk_x, chunk_z)``."""
    heightmaps = (
        b"\x0a"
        + struct.pack(">H", 0)
        + b"\x0c"
        + struct.pack(">H", len(HEIGHTMAP_NAME))
        + HEIGHTMAP_NAME
        + struct.pack(">i", HEIGHTMAP_LONGS)
        + bytes(8 * HEIGHTMAP_LONGS)
        + b"\x00"
    )
    biomes = struct.pack(">i", PLAINS_BIOME) * BIOME_COUNT
    section_header = (
        encode_varint(8)
        + encode_varint(3)
        + encode_varint(256)
        + struct.pack("<I", 1)
        + encode_varint(4096)
        + encode_varint(SECTION_LONGS)
    )
    section = pad_to_alignment(section_header, 8) + STONE_LONG * SECTION_LONGS
    payload = (
        encode_varint(CHUNK_DATA_ID)
        + struct.pack("<II", chunk_x & 0xFFFFFFFF, chunk_z & 0xFFFFFFFF)
        + encode_varint(1)
        + encode_varint(1)
        + heightmaps
        + biomes
        + encode_varint(len(section))
        + section
        + encode_varint(0)
    )
    return prepend_packet_length(payload)


def send_stone_platform_chunk_at(session: ClientSession, chunk_x: int, chunk_z: int) -> bytes:
    """Send a stone chunk at ``(chunk_x, chunk_z)`` to ``session``; return the packet."""
    packet = stone_platform_chunk(chunk_x, chunk_z)
    session.send_packet(packet)
    return packet


def send_3x3_chunks(session: ClientSession) -> list[tuple[int, int]]:
    """Send the nine chunks around the player; return their coordinates in send order."""
    centre_x = int(session.player.x / CHUNK_SIZE)
    centre_z = int(session.player.z / CHUNK_SIZE)
    coords = [
        (centre_x + dx, centre_z + dz) for dx in (-1, 0, 1) for dz in (-1, 0, 1)
    ]
    for chunk_x, chunk_z in coords:
        send_stone_platform_chunk_at(session, chunk_x, chunk_z)
    return coords


def player_pos_look(session: ClientSession) -> bytes:
    """Send the player's own position and look, then the chunks around it."""
    player = session.player
    yaw = player.yaw
    while yaw < 0:
        yaw += 360.0
    while yaw >= 360.0:
        yaw -= 360.0
    payload = (
        bytes([POSITION_LOOK_ID])
        + struct.pack(">dddff", player.x, player.y, player.z, yaw, player.pitch)
        + bytes([0, TELEPORT_ID])
    )
    packet = prepend_packet_length(payload)
    session.send_packet(packet)
    send_3x3_chunks(session)
    return packet


def send_keep_alive(session: ClientSession) -> bytes | None:
    """Queue a keep-alive for ``session``; it goes out on the next flush.

    Returns the framed packet, or ``None`` when the session has no socket.
    """
    if session is None or session.sock is None:
        return None
    payload = bytes([KEEP_ALIVE_ID]) + struct.pack(
        "<Q", current_time_millis() & 0xFFFFFFFFFFFFFFFF
    )
    packet = prepend_packet_length(payload)
    session.outgoing += packet
    return packet


def handle_play_state(
    session: ClientSession, sessions: list[ClientSession], packet_id: int, packet: bytes
) -> None:
    """Dispatch one serverbound packet received while in play."""
    if packet_id == ARM_SWING_ID:
        send_player_arm_swing(session, sessions)
    elif packet_id == CHAT_ID:
        handle_chat_packet(session, packet, sessions)
    elif packet_id == BEACON_ID:
        logger.debug("beacon packet received")
    elif packet_id in _MOVEMENT_HANDLERS:
        _MOVEMENT_HANDLERS[packet_id](session, packet)
    elif packet_id not in _IGNORED_PACKETS:
        logger.debug("ignoring play packet 0x%02X", packet_id)


def _send_to_connected(targets: Iterable[ClientSession], packet: bytes) -> int:
    count = 0
    for target in targets:
        if target.sock is None:
            continue
        target.send_packet(packet)
        count += 1
    return count


def player_info_packet_join(
    source: ClientSession, targets: Iterable[ClientSession], store: PlayerStore
) -> int:
    """Add ``source`` to the player list of each connected target; return recipients."""
    stored = store.find(source.username)
    if stored is None:
        logger.error("player not found in file for %r", source.player.username)
        return 0
    payload = (
        encode_varint(PLAYER_INFO_ID)
        + encode_varint(PLAYER_INFO_ADD)
        + encode_varint(1)
        + parse_uuid_bytes(source.player.uuid)
        + _encode_string(source.player.username)
        + encode_varint(1)
        + _encode_string("textures")
        + _encode_string(stored.skin_url)
        + b"\x00"
        + encode_varint(INFO_GAMEMODE)
        + encode_varint(INFO_PING)
        + b"\x00"
    )
    return _send_to_connected(targets, prepend_packet_length(payload))


def player_info_packet_disconnect(
    source: ClientSession, targets: Iterable[ClientSession], store: PlayerStore
) -> int:
    """Remove ``source`` from the player list of each connected target; return recipients."""
    stored = store.find(source.username)
    if stored is None:
        logger.error("player not found in file for %r", source.player.username)
        return 0
    payload = (
        encode_varint(PLAYER_INFO_ID)
        + encode_varint(PLAYER_INFO_REMOVE)
        + encode_varint(1)
        + parse_uuid_bytes(source.player.uuid)
    )
    return _send_to_connected(targets, prepend_packet_length(payload))


def _others_in_play(new_session: ClientSession, sessions: Iterable[ClientSession]):
    return [
        other
        for other in sessions
        if other is not new_session
        and other.sock is not None
        and other.state == ConnectionState.PLAY
    ]


def send_newcomer_to_existing_players(
    new_session: ClientSession, sessions: Iterable[ClientSession], store: PlayerStore
) -> int:
    """Add the newcomer to the player list of everyone already in play."""
    return sum(
        player_info_packet_join(new_session, [other], store)
        for other in _others_in_play(new_session, sessions)
    )


def send_existing_players_to_newcomer(
    new_session: ClientSession, sessions: Iterable[ClientSession], store: PlayerStore
) -> int:
    """Add everyone already in play to the newcomer's player list."""
    return sum(
        player_info_packet_join(other, [new_session], store)
        for other in _others_in_play(new_session, sessions)
    )


def spawn_player_packet(source: ClientSession, spawn_session: ClientSession) -> bytes | None:
    """Show ``spawn_session``'s player to ``source``; return the packet, if one was sent."""
    if source.state != ConnectionState.PLAY:
        logger.warning("tried to send spawn packet to player not in play state")
        return None
    if source.player.username == spawn_session.player.username:
        logger.warning("spawn of same username %r skipped", source.player.username)
        return None
    player = spawn_session.player
    payload = (
        encode_varint(SPAWN_PLAYER_ID)
        + encode_varint(player.eid)
        + parse_uuid_bytes(player.uuid)
        + struct.pack(">ddd", player.x, player.y, player.z)
        + bytes([angle_to_byte(player.yaw), angle_to_byte(player.pitch)])
    )
    packet = prepend_packet_length(payload)
    source.send_packet(packet)
    return packet


def update_game_tick(sessions: Iterable[ClientSession]) -> None:
    """Relay every player's movement to every other connected player in play."""
    active = [s for s in sessions if s.sock is not None and s.state == ConnectionState.PLAY]
    for source in active:
        for target in active:
            if target is source:
                continue
            if target.sock is None or target.state != ConnectionState.PLAY:
                continue
            broadcast_movement(source, target)


def is_player_in_view(source: ClientSession, sessions: Iterable[ClientSession]) -> int:
    """Spawn nearby players ``source`` has not seen yet; return how many were spawned."""
    spawned = 0
    for target in sessions:
        if target.sock is None or target is source or target.state != ConnectionState.PLAY:
            continue
        dx = source.player.x - target.player.x
        dz = source.player.z - target.player.z
        if dx * dx + dz * dz < VIEW_DISTANCE_SQ and not source.is_known_player(target.username):
            spawn_player_packet(source, target)
            source.add_known_player(target.username)
            spawned += 1
    return spawned