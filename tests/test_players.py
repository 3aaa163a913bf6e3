import pytest

from blockserve.players import PlayerStore, fetch_player_into_session, generate_eid
from blockserve.session import ClientSession, Player


@pytest.fixture
def store(tmp_path):
    return PlayerStore(tmp_path / "players")


def _session():
    return ClientSession()


def test_ensure_directory_creates_it(tmp_path):
    store = PlayerStore(tmp_path / "world" / "players")
    store.ensure_directory()
    assert (tmp_path / "world" / "players").is_dir()


def test_add_new_player_sets_defaults(store):
    session = _session()
    created = store.add_player(session, "abcd" * 8, "alice", "skin-data")
    assert created is True
    player = session.player
    assert player.username == "alice"
    assert player.uuid == "abcd" * 8
    assert player.skin_url == "skin-data"
    assert (player.x, player.y, player.z) == (5.0, 17.0, 5.0)
    assert player.on_ground == 1
    assert 0 <= player.eid < 2**31
    assert (store.directory / "alice.txt").exists()


def test_add_existing_player_loads_record(store):
    first = _session()
    store.add_player(first, "abcd" * 8, "alice", "skin-data")
    second = _session()
    created = store.add_player(second, "ffff" * 8, "alice", "other")
    assert created is False
    assert second.player.eid == first.player.eid
    assert second.player.uuid == "abcd" * 8
    assert second.player.y == 17.0


def test_save_then_load_round_trip(store):
    session = _session()
    store.ensure_directory()
    session.player = Player(
        uuid="1234" * 8, username="bob", skin_url="s", eid=42,
        x=1.5, y=2.0, z=3.25, yaw=90.5, pitch=-10.25, flags=10, on_ground=0,
    )
    path = store.save(session)
    text = path.read_text(encoding="utf-8")
    assert "Position: 1.500, 2.000, 3.250\n" in text
    assert "Flags: 0x0A\n" in text

    loaded = _session()
    assert store.add_player(loaded, "x" * 32, "bob", "ignored") is False
    p = loaded.player
    assert (p.x, p.y, p.z) == (1.5, 2.0, 3.25)
    assert (p.yaw, p.pitch) == (90.5, -10.25)
    assert p.eid == 42
    assert p.flags == 10
    assert p.on_ground == 0


def test_corrupted_file_raises(store):
    store.ensure_directory()
    (store.directory / "carol.txt").write_text("UUID: abc\nEID: 3\n", encoding="utf-8")
    with pytest.raises(ValueError):
        store.add_player(_session(), "u" * 32, "carol", "skin")


def test_find_returns_stored_player(store):
    session = _session()
    store.add_player(session, "abcd" * 8, "dave", "skin-data")
    found = store.find("dave")
    assert found.username == "dave"
    assert found.uuid == "abcd" * 8
    assert found.skin_url == "skin-data"
    assert found.eid == session.player.eid


def test_find_missing_returns_none(store):
    assert store.find("nobody") is None


def test_find_username_mismatch_returns_none(store):
    store.ensure_directory()
    (store.directory / "erin.txt").write_text(
        "UUID: abc\nUsername: someone\n", encoding="utf-8"
    )
    assert store.find("erin") is None


def test_fetch_player_into_session_copies_fields():
    session = _session()
    source = Player(uuid="u1", username="frank", eid=7, x=1.0, y=2.0, z=3.0,
                    yaw=10.0, pitch=20.0, flags=3, on_ground=1, skin_url="skin")
    fetch_player_into_session(session, source)
    p = session.player
    assert (p.username, p.uuid, p.eid) == ("frank", "u1", 7)
    assert (p.x, p.y, p.z, p.yaw, p.pitch) == (1.0, 2.0, 3.0, 10.0, 20.0)
    assert (p.flags, p.on_ground) == (3, 1)
    assert p.skin_url == ""


def test_generate_eid_range():
    eids = [generate_eid() for _ in range(200)]
    assert all(0 <= eid <= 0x7FFFFFFF for eid in eids)
    assert len(set(eids)) > 1