"""Connection state, player data and per-client sessions."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

BUFFER_SIZE = 16384
MAX_CLIENTS = 5
USERNAME_LEN = 16
MAX_KNOWN_PLAYERS = 5

_PLAYER_LINE = re.compile(
    r"([^;]{1,35});([^;]{1,255});([^;]*);([^;]*);([^;]*);([^\n]{1,511})"
)


class ConnectionState(enum.IntEnum):
    """Protocol state of a client connection."""

    NONE = -1
    HANDSHAKE = 0
    STATUS = 1
    LOGIN = 2
    PLAY = 3


@dataclass
class Player:
    """A player's identity and current and previous position."""

    uuid: str = ""
    username: str = ""
    skin_url: str = ""
    eid: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    last_x: float = 0.0
    last_y: float = 0.0
    last_z: float = 0.0
    last_yaw: float = 0.0
    last_pitch: float = 0.0
    flags: int = 0
    last_on_ground: int = 0
    on_ground: int = 0

    def normalize_yaw(self) -> None:
        """Bring the yaw into the range [0, 360)."""
        while self.yaw < 0.0:
            self.yaw += 360.0
        while self.yaw >= 360.0:
            self.yaw -= 360.0


@dataclass
class ClientSession:
    """One connected client: socket, buffers, state and player."""

    sock: Any = None
    state: ConnectionState = ConnectionState.HANDSHAKE
    player: Player = field(default_factory=Player)
    username: str = ""
    recv_buffer: bytearray = field(default_factory=bytearray)
    should_close: bool = False
    known_players: list[str] = field(default_factory=list)
    outgoing: bytearray = field(default_factory=bytearray, init=False, repr=False)

    def send_packet(self, data: bytes) -> int:
        """Queue a framed packet and try to send it; return bytes sent."""
        if len(data) > BUFFER_SIZE:
            raise ValueError(
                f"packet of {len(data)} bytes exceeds send buffer of {BUFFER_SIZE}"
            )
        self.outgoing += data
        return self.flush()

    def flush(self) -> int:
        """Send as much pending data as one send call takes; return bytes sent."""
        if not self.outgoing:
            return 0
        if self.sock is None:
            self.should_close = True
            return 0
        try:
            sent = self.sock.send(bytes(self.outgoing))
        except OSError:
            sent = 0
        if sent <= 0:
            logger.error("sending failed, closing client")
            self.should_close = True
            return 0
        del self.outgoing[:sent]
        return sent

    def is_known_player(self, username: str) -> bool:
        """Whether ``username`` is among the players this client has seen."""
        key = username[:USERNAME_LEN]
        return any(name[:USERNAME_LEN] == key for name in self.known_players)

    def add_known_player(self, username: str) -> None:
        """Remember ``username`` unless the list is already full."""
        if len(self.known_players) < MAX_KNOWN_PLAYERS:
            self.known_players.append(username[: USERNAME_LEN - 1])

    def remove_known_player(self, username: str) -> None:
        """Forget the first remembered entry matching ``username``."""
        key = username[:USERNAME_LEN]
        for index, name in enumerate(self.known_players):
            if name[:USERNAME_LEN] == key:
                del self.known_players[index]
                return


def _parse_player_line(line: str) -> tuple[str, str, float, float, float, str] | None:
    match = _PLAYER_LINE.match(line)
    if not match:
        return None
    uuid, username, x, y, z, skin = match.groups()
    try:
        return uuid, username, float(x), float(y), float(z), skin
    except ValueError:
        return None


def load_player_from_file(filename, search_username: str, session: ClientSession) -> None:
    """Load ``uuid;username;x;y;z;skin`` for ``search_username`` into ``session``.

    Raises ``LookupError`` when no well-formed line names that player.
    """
    with open(filename, encoding="utf-8") as file:
        for line in file:
            record = _parse_player_line(line)
            if record is None:
                logger.warning("skipping malformed line: %s", line.rstrip("\n"))
                continue
            uuid, username, x, y, z, skin = record
            if username != search_username:
                continue
            player = session.player
            player.username = username[:31]
            player.uuid = uuid[:36]
            player.x, player.y, player.z = x, y, z
            player.skin_url = skin[:255]
            logger.info("loaded player %s (UUID: %s)", player.username, player.uuid)
            return
    raise LookupError(f"player with username {search_username!r} not found in file")