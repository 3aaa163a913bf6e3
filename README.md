# blockserve

A small multiplayer server that speaks the Minecraft Java Edition 1.15.2
protocol (protocol number 578). It answers server-list pings, logs players
in, places them on a flat stone platform, relays chat, and keeps every
connected player informed of the others' movement, rotation and arm swings.

## Installing

```
pip install .
```

The package uses only the Python standard library (Python 3.10 or later).

## Running

```
blockserve
```

By default the server listens on TCP port 61243 on all interfaces and
accepts up to five clients at once. Point a 1.15.2 client at
`localhost:61243`.

Options:

- `--host ADDRESS` – address to bind (default `0.0.0.0`)
- `--port PORT` – port to listen on (default `61243`)
- `--players-dir DIR` – directory of player records (default `/server/players`)

While running it:

- answers status requests with version `1.15.2`, protocol 578, a maximum of
  five players, the number of other connected clients and the description
  "Block server", then replies to the client's ping and closes the
  connection;
- on login, looks the player's name up with the Mojang profile service to
  obtain their UUID and skin texture, so that real skins are shown;
- stores each player in a text file `<players-dir>/<name>.txt` (UUID,
  username, skin, entity id, position, yaw, pitch, flags and on-ground) and
  rewrites those files every three seconds, so a returning player starts
  where they left; new players start at (5, 17, 5);
- sends the joining player the nine stone chunks around their position;
- sends a keep-alive packet every fifteen seconds and runs a game tick every
  fifty milliseconds, during which movement is relayed between players and
  players within ten blocks of each other are spawned for one another;
- announces joins and departures in chat.

The process must be allowed to create the players directory. Stop the
server with Ctrl-C.

## What it does not do

- There is no encryption, no compression and no world beyond the stone
  platform; blocks cannot be placed or broken.
- Logging in needs the Mojang profile service to be reachable: if no UUID
  comes back for the name, the login is logged as failed and the player
  does not enter the game.
- Moves too large for a relative move are only logged; no teleport is sent.
- Players who walk out of view are not despawned.

## Using the pieces

The protocol helpers in `blockserve.protocol` can be used on their own:

```python
from blockserve.protocol import encode_varint, decode_varint, prepend_packet_length

encode_varint(300)                 # b"\xac\x02"
decode_varint(b"\xac\x02", 0)      # (300, 2)
prepend_packet_length(b"\x00")     # b"\x01\x00"
```

Malformed or truncated VarInts raise `VarIntError`.

`blockserve.mojang` looks up profiles (`get_uuid`, `get_skin_base64`) and
formats and parses UUIDs:

```python
from blockserve.mojang import format_uuid, parse_uuid_bytes

format_uuid("4566e69fc90748ee8d71d7ba5aa00d20")
# "4566e69f-c907-48ee-8d71-d7ba5aa00d20"
parse_uuid_bytes("4566e69fc90748ee8d71d7ba5aa00d20")  # 16 bytes
```

The other modules:

- `blockserve.session` – `ConnectionState`, `Player` and `ClientSession`
  (send queue, known-player list) and `load_player_from_file` for
  `uuid;username;x;y;z;skin` lines;
- `blockserve.handshake` – `parse_handshake`, `build_status_response` and
  `pong_packet`;
- `blockserve.login` – `extract_username`, `login_success_packet` and
  `handle_login`;
- `blockserve.chat` – `chat_packet`, `extract_message` and the broadcast
  helpers;
- `blockserve.movement` – parsing serverbound moves and building entity
  move, rotation, head-look and animation packets;
- `blockserve.play` – join-game, `stone_platform_chunk`, position-and-look,
  keep-alive, player-list and spawn packets, and `update_game_tick`;
- `blockserve.players.PlayerStore` – the player record files;
- `blockserve.server` – `create_server_socket`, the `Server` class and the
  `main` entry point.

## Tests

```
pip install ".[test]"
pytest
```