"""Player movement: parsing serverbound moves and relaying them as entity packets."""

from __future__ import annotations

import logging
import math
import struct
from collections.abc import Iterable

from .protocol import encode_varint, prepend_packet_length, read_double_be, read_float_be
from .session import ClientSession, ConnectionState, Player

logger = logging.getLogger(__name__)

ENTITY_POSITION_ID = 0x29
ENTITY_POSITION_ROTATION_ID = 0x2A
ENTITY_ROTATION_ID = 0x2B
ENTITY_MOVEMENT_ID = 0x2C
ENTITY_HEAD_LOOK_ID = 0x3C
ANIMATION_ID = 0x06
ANIMATION_MAIN_HAND = 0x00

# Relative moves are sent in fixed point: 32 * 128 units per block.
DELTA_SCALE = 4096
ROTATION_THRESHOLD = 0.01
HEAD_ROTATION_THRESHOLD = 0.001

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31


def _truncate(value: float) -> int:
    """Truncate toward zero; non-finite or out-of-range values collapse to zero."""
    if not math.isfinite(value) or not _INT32_MIN <= value < _INT32_MAX:
        return 0
    return int(value)


def _to_int16(value: float) -> int:
    n = _truncate(value) & 0xFFFF
    return n - 0x10000 if n >= 0x8000 else n


def angle_to_byte(degrees: float) -> int:
    """Map an angle in degrees to the protocol's 1/256-turn byte."""
    return _truncate(degrees / 360.0 * 256.0) & 0xFF


def _byte_at(packet: bytes, offset: int) -> int:
    try:
        return packet[offset]
    except IndexError:
        raise ValueError(f"not enough data at offset {offset}") from None


def update_last_pos(player: Player) -> None:
    """Remember the current position as the previous one."""
    player.last_x = player.x
    player.last_y = player.y
    player.last_z = player.z
    player.last_on_ground = player.on_ground


def update_last_rot(player: Player) -> None:
    """Remember the current rotation as the previous one."""
    player.last_pitch = player.pitch
    player.last_yaw = player.yaw
    player.last_on_ground = player.on_ground


def handle_player_position(session: ClientSession, packet: bytes) -> None:
    """Apply a serverbound position packet (id, x, y, z, on-ground)."""
    x = read_double_be(packet, 1)
    y = read_double_be(packet, 9)
    z = read_double_be(packet, 17)
    on_ground = _byte_at(packet, 25)
    player = session.player
    update_last_pos(player)
    player.x, player.y, player.z = x, y, z
    player.on_ground = on_ground


def handle_player_position_rotation(session: ClientSession, packet: bytes) -> None:
    """Apply a serverbound position-and-rotation packet."""
    x = read_double_be(packet, 1)
    y = read_double_be(packet, 9)
    z = read_double_be(packet, 17)
    yaw = read_float_be(packet, 25)
    pitch = read_float_be(packet, 29)
    on_ground = _byte_at(packet, 33)
    player = session.player
    update_last_pos(player)
    update_last_rot(player)
    player.x, player.y, player.z = x, y, z
    player.yaw = yaw
    player.pitch = pitch
    player.normalize_yaw()
    player.on_ground = on_ground


def handle_player_rotation(session: ClientSession, packet: bytes) -> None:
    """Apply a serverbound rotation packet (id, yaw, pitch, on-ground)."""
    yaw = read_float_be(packet, 1)
    pitch = read_float_be(packet, 5)
    on_ground = _byte_at(packet, 9)
    player = session.player
    update_last_rot(player)
    player.yaw = yaw
    player.pitch = pitch
    player.normalize_yaw()
    player.on_ground = on_ground


def handle_player_movement(session: ClientSession, packet: bytes) -> None:
    """Apply a serverbound on-ground-only movement packet."""
    on_ground = _byte_at(packet, 1)
    player = session.player
    player.last_on_ground = player.on_ground
    player.on_ground = on_ground


def _deltas(delta_x: int, delta_y: int, delta_z: int) -> bytes:
    return struct.pack(">HHH", delta_x & 0xFFFF, delta_y & 0xFFFF, delta_z & 0xFFFF)


def _send(target: ClientSession, payload: bytes) -> bytes:
    packet = prepend_packet_length(payload)
    target.send_packet(packet)
    return packet


def send_entity_position_packet(
    source: ClientSession, target: ClientSession, delta_x: int, delta_y: int, delta_z: int
) -> bytes:
    """Send ``source``'s relative move to ``target``; return the framed packet."""
    player = source.player
    payload = (
        bytes([ENTITY_POSITION_ID])
        + encode_varint(player.eid)
        + _deltas(delta_x, delta_y, delta_z)
        + bytes([player.on_ground & 0xFF])
    )
    return _send(target, payload)


def send_entity_rotation_packet(source: ClientSession, target: ClientSession) -> bytes:
    """Send ``source``'s rotation to ``target``; return the framed packet."""
    player = source.player
    payload = (
        bytes([ENTITY_ROTATION_ID])
        + encode_varint(player.eid)
        + bytes([angle_to_byte(player.yaw), angle_to_byte(player.pitch), player.on_ground & 0xFF])
    )
    return _send(target, payload)


def send_entity_position_rotation_packet(
    source: ClientSession, target: ClientSession, delta_x: int, delta_y: int, delta_z: int
) -> bytes:
    """Send ``source``'s relative move and rotation to ``target``."""
    player = source.player
    payload = (
        bytes([ENTITY_POSITION_ROTATION_ID])
        + encode_varint(player.eid)
        + _deltas(delta_x, delta_y, delta_z)
        + bytes([angle_to_byte(player.yaw), angle_to_byte(player.pitch), player.on_ground & 0xFF])
    )
    return _send(target, payload)


def send_entity_movement(source: ClientSession, target: ClientSession) -> bytes:
    """Send a bare entity-movement packet for ``source`` to ``target``."""
    payload = bytes([ENTITY_MOVEMENT_ID]) + encode_varint(source.player.eid)
    return _send(target, payload)


def send_entity_head_rotation_packet(
    source: ClientSession, target: ClientSession, yaw_degrees: float
) -> bytes:
    """Send ``source``'s head yaw to ``target``.

    The yaw sent is the source player's own, normalised in place; the
    ``yaw_degrees`` argument is accepted for symmetry but not used.
    """
    player = source.player
    player.normalize_yaw()
    payload = (
        bytes([ENTITY_HEAD_LOOK_ID])
        + encode_varint(player.eid)
        + bytes([angle_to_byte(player.yaw)])
    )
    return _send(target, payload)


def broadcast_movement(source: ClientSession, target: ClientSession) -> list[bytes]:
    """Relay what ``source`` did since the last relay to ``target``.

    Returns the framed packets that were sent, in order.
    """
    player = source.player
    delta_x = _to_int16((player.x - player.last_x) * DELTA_SCALE)
    delta_y = _to_int16((player.y - player.last_y) * DELTA_SCALE)
    delta_z = _to_int16((player.z - player.last_z) * DELTA_SCALE)
    delta_yaw = player.yaw - player.last_yaw
    delta_pitch = player.pitch - player.last_pitch

    moved = bool(delta_x or delta_y or delta_z)
    rotated = abs(delta_yaw) > ROTATION_THRESHOLD or abs(delta_pitch) > ROTATION_THRESHOLD

    sent: list[bytes] = []
    if abs(delta_yaw) > HEAD_ROTATION_THRESHOLD:
        sent.append(send_entity_head_rotation_packet(source, target, player.yaw))

    if not moved and not rotated:
        return sent

    if max(abs(delta_x), abs(delta_y), abs(delta_z)) > 32767:
        logger.debug("large movement detected, should teleport")
    elif moved and rotated:
        sent.append(
            send_entity_position_rotation_packet(source, target, delta_x, delta_y, delta_z)
        )
    elif moved:
        sent.append(send_entity_position_packet(source, target, delta_x, delta_y, delta_z))
    else:
        sent.append(send_entity_rotation_packet(source, target))

    player.last_x = player.x
    player.last_y = player.y
    player.last_z = player.z
    player.last_yaw = player.yaw
    player.last_pitch = player.pitch
    return sent


def send_player_arm_swing(session: ClientSession, sessions: Iterable[ClientSession]) -> int:
    """Show ``session``'s main-hand swing to the other players; return recipients."""
    packet = prepend_packet_length(
        bytes([ANIMATION_ID]) + encode_varint(session.player.eid) + bytes([ANIMATION_MAIN_HAND])
    )
    count = 0
    for other in sessions:
        if other is session or other.state != ConnectionState.PLAY:
            continue
        other.send_packet(packet)
        count += 1
    return count