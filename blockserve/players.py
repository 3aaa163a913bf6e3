"""Per-player text records kept in a directory, one file per username."""

from __future__ import annotations

import logging
import random
import re
from pathlib import Path

from .session import ClientSession, Player

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_DIR = "/server/players"
FIELD_COUNT = 9
SPAWN_POSITION = (5.0, 17.0, 5.0)

_NUM = r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
_UUID = re.compile(r"UUID:\s*(\S{1,36})")
_USERNAME = re.compile(r"Username:\s*(\S{1,31})")
_SKIN_PREFIX = "Skin URL: "
_EID = re.compile(r"EID:\s*([+-]?\d+)")
_POSITION = re.compile(rf"Position:\s*({_NUM}),\s*({_NUM}),\s*({_NUM})")
_YAW = re.compile(rf"Yaw:\s*({_NUM})")
_PITCH = re.compile(rf"Pitch:\s*({_NUM})")
_FLAGS = re.compile(r"Flags:\s*0x([0-9A-Fa-f]{1,2})")
_ON_GROUND = re.compile(r"OnGround:\s*([+-]?\d+)")


def _parse_record(path: Path) -> tuple[Player, int]:
    """Read a player file; return the player and how many field lines matched."""
    player = Player()
    fields = 0
    with path.open(encoding="utf-8") as file:
        for raw in file:
            line = raw.split("\n", 1)[0]
            if m := _UUID.match(line):
                player.uuid = m[1]
            elif m := _USERNAME.match(line):
                player.username = m[1]
            elif line.startswith(_SKIN_PREFIX):
                player.skin_url = line[len(_SKIN_PREFIX):][:255]
            elif m := _EID.match(line):
                player.eid = int(m[1])
            elif m := _POSITION.match(line):
                player.x, player.y, player.z = (float(v) for v in m.groups())
            elif m := _YAW.match(line):
                player.yaw = float(m[1])
            elif m := _PITCH.match(line):
                player.pitch = float(m[1])
            elif m := _FLAGS.match(line):
                player.flags = int(m[1], 16)
            elif m := _ON_GROUND.match(line):
                player.on_ground = int(m[1])
            else:
                continue
            fields += 1
    return player, fields


def _write_record(
    path: Path,
    *,
    uuid: str,
    username: str,
    skin_url: str,
    eid: int,
    position: tuple[float, float, float],
    yaw: str,
    pitch: str,
    flags: int,
    on_ground: int,
) -> None:
    x, y, z = position
    with path.open("w", encoding="utf-8") as file:
        file.write(f"UUID: {uuid}\n")
        file.write(f"Username: {username}\n")
        file.write(f"Skin URL: {skin_url}\n")
        file.write(f"EID: {eid}\n")
        file.write(f"Position: {x:.3f}, {y:.3f}, {z:.3f}\n")
        file.write(f"Yaw: {yaw}\n")
        file.write(f"Pitch: {pitch}\n")
        file.write(f"Flags: 0x{flags & 0xFF:02X}\n")
        file.write(f"OnGround: {on_ground}\n")


def fetch_player_into_session(session: ClientSession, player: Player) -> None:
    """Copy a stored player's identity, position and rotation into ``session``."""
    target = session.player
    target.username = player.username[:31]
    target.uuid = player.uuid[:36]
    target.x, target.y, target.z = player.x, player.y, player.z
    target.eid = player.eid
    target.yaw = player.yaw
    target.pitch = player.pitch
    target.flags = player.flags
    target.on_ground = player.on_ground


def generate_eid() -> int:
    """A random non-negative 31-bit entity id."""
    return random.getrandbits(31)


class PlayerStore:
    """Player records stored as ``<directory>/<username>.txt``."""

    def __init__(self, directory=DEFAULT_PLAYER_DIR) -> None:
        self.directory = Path(directory)

    def __repr__(self) -> str:
        return f"PlayerStore({str(self.directory)!r})"

    def _path(self, username: str) -> Path:
        return self.directory / f"{username}.txt"

    def ensure_directory(self) -> None:
        """Create the players directory if it does not exist yet."""
        if not self.directory.exists():
            self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            logger.info("created players directory %s", self.directory)

    def save(self, session: ClientSession) -> Path:
        """Write the session's player to its file; return the file's path."""
        player = session.player
        path = self._path(player.username)
        _write_record(
            path,
            uuid=player.uuid,
            username=player.username,
            skin_url=player.skin_url,
            eid=player.eid,
            position=(player.x, player.y, player.z),
            yaw=f"{player.yaw:.3f}",
            pitch=f"{player.pitch:.3f}",
            flags=player.flags,
            on_ground=player.on_ground,
        )
        return path

    def add_player(
        self, session: ClientSession, uuid: str, username: str, skin_url: str
    ) -> bool:
        """Load ``username`` into ``session``, creating its record if missing.

        Returns ``True`` when a new record was created and ``False`` when an
        existing one was loaded. Raises ``ValueError`` for a corrupted file.
        """
        self.ensure_directory()
        path = self._path(username)
        if path.exists():
            existing, fields = _parse_record(path)
            if fields != FIELD_COUNT:
                raise ValueError(
                    f"corrupted player file {username!r}: "
                    f"only {fields}/{FIELD_COUNT} fields found"
                )
            fetch_player_into_session(session, existing)
            logger.info("loaded existing player %r into session", existing.username)
            return False

        logger.info("player file does not exist, creating new player %r", username)
        eid = generate_eid()
        skin_url = skin_url or ""
        _write_record(
            path,
            uuid=uuid,
            username=username,
            skin_url=skin_url,
            eid=eid,
            position=SPAWN_POSITION,
            yaw="0.0",
            pitch="0.0",
            flags=0,
            on_ground=1,
        )
        player = session.player
        player.username = username[:31]
        player.uuid = uuid[:36]
        player.skin_url = skin_url[:255]
        player.eid = eid
        player.x, player.y, player.z = SPAWN_POSITION
        player.yaw = 0.0
        player.pitch = 0.0
        player.flags = 0
        player.on_ground = 1
        logger.info("added player %r to file", username)
        return True

    def find(self, username: str) -> Player | None:
        """Read the stored player ``username``; ``None`` if absent or mismatched."""
        self.ensure_directory()
        path = self._path(username)
        try:
            player, _ = _parse_record(path)
        except FileNotFoundError:
            logger.error("could not open player file %s for reading", path)
            return None
        if player.uuid and player.username == username:
            return player
        return None