"""The listening server: accepting clients, framing input and the main loop."""

from __future__ import annotations

import argparse
import logging
import selectors
import socket
import sys

from .chat import logger as _chat_logger  # noqa: F401  (keeps chat logging configured)
from .handshake import handle_handshake, handle_ping_pong, send_status_response
from .login import handle_login
from .play import (
    handle_play_state,
    is_player_in_view,
    on_player_disconnect,
    send_keep_alive,
    update_game_tick,
)
from .players import DEFAULT_PLAYER_DIR, PlayerStore
from .protocol import (
    MAX_VARINT_BYTES,
    VarIntError,
    current_time_millis,
    decode_varint,
)
from .session import BUFFER_SIZE, MAX_CLIENTS, ClientSession, ConnectionState

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 61243
POLL_TIMEOUT = 0.1
KEEP_ALIVE_INTERVAL = 15000
TICK_INTERVAL = 50
SAVE_INTERVAL = 3000


def create_server_socket(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> socket.socket:
    """A TCP socket bound to ``(host, port)`` with address reuse, listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(socket.SOMAXCONN)
    except BaseException:
        sock.close()
        raise
    return sock


def _incomplete_varint(data: bytes) -> bool:
    return len(data) < MAX_VARINT_BYTES and all(byte & 0x80 for byte in data)


class Server:
    """Accepts clients on ``listener`` and runs their sessions."""

    def __init__(self, listener, store: PlayerStore | None = None, *, now: int | None = None):
        self.listener = listener
        self.store = store if store is not None else PlayerStore()
        self.sessions: list[ClientSession] = []
        start = current_time_millis() if now is None else now
        self.last_tick = start
        self.last_keep_alive = start
        self.last_save = start
        self._selector = selectors.DefaultSelector()
        self._selector.register(listener, selectors.EVENT_READ, None)

    def _is_active(self, session: ClientSession) -> bool:
        return any(s is session for s in self.sessions)

    def _unregister(self, sock) -> None:
        if sock is None:
            return
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError):
            pass

    def accept_client(self) -> ClientSession | None:
        """Accept one pending connection; return its session, or ``None`` if refused."""
        try:
            client, _address = self.listener.accept()
        except OSError as exc:
            logger.error("accept failed: %s", exc)
            return None
        logger.info("client connected")
        if len(self.sessions) >= MAX_CLIENTS:
            logger.warning("server full, rejecting connection")
            client.close()
            return None
        session = ClientSession(sock=client)
        self.sessions.append(session)
        self._selector.register(client, selectors.EVENT_READ, session)
        return session

    def remove_client(self, session: ClientSession) -> None:
        """Drop ``session``, telling the others if its player was in the game."""
        logger.info("removing client")
        self._unregister(session.sock)
        if session.state == ConnectionState.PLAY:
            name = session.player.username
            on_player_disconnect(session, self.sessions, self.store)
            logger.info("%s has left the game.", name)
        elif session.sock is not None:
            try:
                session.sock.close()
            except OSError as exc:
                logger.error("closing socket failed: %s", exc)
            session.sock = None
        for index, other in enumerate(self.sessions):
            if other is session:
                del self.sessions[index]
                break

    def process_packet(self, session: ClientSession, packet: bytes) -> None:
        """Handle one unframed packet according to the session's state."""
        packet_id, _ = decode_varint(packet)
        state = session.state
        if state == ConnectionState.HANDSHAKE:
            if packet_id == 0x00:
                handle_handshake(session, packet)
            else:
                logger.warning("unexpected packet id %d in handshake state", packet_id)
        elif state == ConnectionState.STATUS:
            if packet_id == 0x00:
                send_status_response(session, len(self.sessions) - 1)
                handle_ping_pong(session)
                session.should_close = True
            else:
                logger.warning("unexpected packet id %d in status state", packet_id)
        elif state == ConnectionState.LOGIN:
            if packet_id == 0x00:
                logger.info("login packet received")
                handle_login(session, packet, self.sessions, self.store)
                session.state = ConnectionState.PLAY
            else:
                logger.warning("unexpected packet id %d in login state", packet_id)
        elif state == ConnectionState.PLAY:
            handle_play_state(session, self.sessions, packet_id, packet)
        else:
            logger.error("unknown state")

    def handle_client_data(self, session: ClientSession, data: bytes) -> bool:
        """Buffer ``data`` and process every complete packet; return whether to drop the client."""
        if not data:
            return True
        buffer = session.recv_buffer
        buffer += data
        if len(buffer) > BUFFER_SIZE:
            logger.error("receive buffer overflow")
            return True
        while buffer:
            try:
                length, offset = decode_varint(buffer)
            except VarIntError:
                if _incomplete_varint(buffer):
                    break
                logger.error("invalid packet length")
                return True
            if length < 0:
                logger.error("invalid packet length")
                return True
            if offset + length > len(buffer):
                logger.debug(
                    "incomplete packet, expected %d, but only %d bytes available",
                    length,
                    len(buffer) - offset,
                )
                break
            packet = bytes(buffer[offset:offset + length])
            del buffer[:offset + length]
            try:
                self.process_packet(session, packet)
            except (ValueError, LookupError, OSError) as exc:
                logger.error("packet handling failed: %s", exc)
        return session.should_close

    def tick(self, now: int) -> None:
        """Run game ticks, keep-alives and saves that are due at ``now`` (ms)."""
        while now - self.last_tick >= TICK_INTERVAL:
            update_game_tick(self.sessions)
            for session in list(self.sessions):
                is_player_in_view(session, self.sessions)
            self.last_tick += TICK_INTERVAL

        if now - self.last_keep_alive >= KEEP_ALIVE_INTERVAL:
            for session in self.sessions:
                send_keep_alive(session)
            self.last_keep_alive = now

        if now - self.last_save >= SAVE_INTERVAL:
            for session in self.sessions:
                try:
                    self.store.save(session)
                except OSError as exc:
                    logger.error("could not save player file: %s", exc)
            self.last_save = now

    def _read_from(self, session: ClientSession) -> None:
        room = BUFFER_SIZE - len(session.recv_buffer)
        data = b""
        if room > 0:
            try:
                data = session.sock.recv(room)
            except OSError:
                data = b""
        if self.handle_client_data(session, data):
            self.remove_client(session)

    def _flush_pending(self) -> None:
        for session in list(self.sessions):
            if session.outgoing:
                session.flush()
            if session.should_close:
                self.remove_client(session)

    def serve_forever(self) -> None:
        """Run the accept/read/tick loop until interrupted or polling fails."""
        try:
            while True:
                self.tick(current_time_millis())
                try:
                    events = self._selector.select(POLL_TIMEOUT)
                except OSError as exc:
                    logger.error("polling failed: %s", exc)
                    break
                for key, _mask in events:
                    if key.data is None:
                        self.accept_client()
                        continue
                    session = key.data
                    if self._is_active(session) and session.sock is not None:
                        self._read_from(session)
                self._flush_pending()
        except KeyboardInterrupt:
            logger.info("shutting down")

    def close(self) -> None:
        """Close every client socket and the listener."""
        for session in self.sessions:
            self._unregister(session.sock)
            if session.sock is not None:
                try:
                    session.sock.close()
                except OSError:
                    pass
                session.sock = None
        self.sessions.clear()
        self._unregister(self.listener)
        self._selector.close()
        self.listener.close()


def main(argv=None) -> int:
    """Start the server; return the process exit status."""
    parser = argparse.ArgumentParser(prog="blockserve", description="Run the block game server.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="address to bind")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    parser.add_argument(
        "--players-dir", default=DEFAULT_PLAYER_DIR, help="directory of player records"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        listener = create_server_socket(args.host, args.port)
    except (OSError, OverflowError) as exc:
        print(f"could not start server: {exc}", file=sys.stderr)
        return 1
    print(f"Server listening on port {args.port}")
    server = Server(listener, PlayerStore(args.players_dir))
    try:
        server.serve_forever()
    finally:
        server.close()
    return 0