import json

import pytest

from blockserve.chat import (
    broadcast_chat_message,
    chat_packet,
    extract_message,
    handle_chat_packet,
    send_player_disconnected,
    send_player_joined_message,
)
from blockserve.protocol import decode_varint, encode_varint
from blockserve.session import ClientSession, ConnectionState


class FakeSocket:
    def __init__(self):
        self.sent = []

    def send(self, data):
        self.sent.append(bytes(data))
        return len(data)


def _session(name, state=ConnectionState.PLAY, connected=True):
    session = ClientSession(sock=FakeSocket() if connected else None, state=state)
    session.username = name
    session.player.username = name
    return session


def _decode_chat(frame):
    length, offset = decode_varint(frame)
    assert length == len(frame) - offset
    assert frame[offset] == 0x0F
    text_len, pos = decode_varint(frame, offset + 1)
    assert pos + text_len + 1 == len(frame)
    return json.loads(frame[pos:pos + text_len].decode("utf-8")), frame[-1]


def _chat_packet_in(text):
    body = text.encode("utf-8")
    return b"\x03" + encode_varint(len(body)) + body


def test_chat_packet_layout():
    obj, kind = _decode_chat(chat_packet('{"text":"hi"}', 1))
    assert obj == {"text": "hi"}
    assert kind == 1


def test_extract_message_round_trip():
    assert extract_message(_chat_packet_in("hello world")) == "hello world"


def test_extract_message_out_of_bounds():
    with pytest.raises(ValueError):
        extract_message(b"\x03\x10abc")


def test_handle_chat_packet_broadcasts_to_connected():
    alice = _session("alice")
    bob = _session("bob", state=ConnectionState.LOGIN)
    gone = _session("gone", connected=False)
    message = handle_chat_packet(alice, _chat_packet_in('say "hi"'), [alice, bob, gone])
    assert message == 'say "hi"'
    for target in (alice, bob):
        assert len(target.sock.sent) == 1
        obj, kind = _decode_chat(target.sock.sent[0])
        assert kind == 0
        assert obj == {
            "translate": "chat.type.text",
            "with": [{"text": "alice"}, {"text": 'say "hi"'}],
        }


def test_handle_chat_packet_too_long_raises():
    alice = _session("alice")
    with pytest.raises(ValueError):
        handle_chat_packet(alice, _chat_packet_in("x" * 600), [alice])
    assert alice.sock.sent == []


def test_broadcast_counts_recipients():
    a, b, c = _session("a"), _session("b"), _session("c", connected=False)
    assert broadcast_chat_message(a, [a, b, c], '{"text":"x"}') == 2


def test_joined_message_only_to_play_sessions():
    newcomer = _session("carol")
    waiting = _session("dave", state=ConnectionState.LOGIN)
    assert send_player_joined_message(newcomer, [newcomer, waiting]) == 1
    assert waiting.sock.sent == []
    obj, kind = _decode_chat(newcomer.sock.sent[0])
    assert obj == {"text": "carol has joined the game.", "color": "yellow"}
    assert kind == 1


def test_disconnected_skips_self_and_non_play():
    leaving = _session("erin")
    other = _session("frank")
    login = _session("gina", state=ConnectionState.LOGIN)
    assert send_player_disconnected(leaving, [leaving, other, login]) == 1
    assert leaving.sock.sent == []
    assert login.sock.sent == []
    obj, kind = _decode_chat(other.sock.sent[0])
    assert obj == {"text": "erin left the game.", "color": "yellow"}
    assert kind == 1


def test_disconnected_not_in_play_sends_nothing():
    leaving = _session("erin", state=ConnectionState.LOGIN)
    other = _session("frank")
    assert send_player_disconnected(leaving, [leaving, other]) == 0
    assert other.sock.sent == []