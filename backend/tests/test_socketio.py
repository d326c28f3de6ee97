import pytest

from conftest import WORDS


def _create_room(client):
    return client.post("/api/rooms", json={}).get_json()["roomCode"]


def _events(sio, name):
    return [m["args"][0] for m in sio.get_received() if m["name"] == name]


def _join(sio, code, name, key):
    return sio.emit("room:join", {"roomCode": code, "name": name, "playerKey": key}, callback=True)


def _seat(sio_factory, code, name):
    sio = sio_factory()
    ack = _join(sio, code, name, f"key-{name}")
    assert ack["ok"] is True
    return sio, ack["playerId"]


@pytest.fixture()
def room(client):
    return _create_room(client)


@pytest.fixture()
def games(flask_app):
    return flask_app.extensions["sketchturn"]


def _start_playing(games, room, seated, word="APPLE"):
    """Host starts, the drawer picks `word`; returns (drawer, guessers) as (sio, id) pairs."""
    host_sio = seated[0][0]
    assert host_sio.emit("game:start", {"roomCode": room}, callback=True) == {"ok": True}
    drawer_id = games.get_session(room).current_drawer_id
    drawer = next(s for s in seated if s[1] == drawer_id)
    guessers = [s for s in seated if s[1] != drawer_id]
    assert drawer[0].emit("game:choose_word", {"word": word}, callback=True) == {"ok": True}
    for sio, _ in seated:
        sio.get_received()
    return drawer, guessers


def test_join_and_state_broadcast(sio_factory, room, games):
    host, host_id = _seat(sio_factory, room, "Ann")
    guest, guest_id = _seat(sio_factory, room, "Bob")
    assert host_id != guest_id

    states = _events(host, "room:state")
    assert states[-1]["hostId"] == host_id
    assert sorted(p["id"] for p in states[-1]["players"]) == sorted([host_id, guest_id])
    assert sorted(games.get_session(room).roster) == sorted([host_id, guest_id])


def test_player_keys_are_never_published(sio_factory, room):
    host, _ = _seat(sio_factory, room, "Ann")
    _seat(sio_factory, room, "Bob")

    state = _events(host, "room:state")[-1]
    published = {state["hostId"]} | {p["id"] for p in state["players"]}
    assert not published & {"key-Ann", "key-Bob"}


def test_join_rejects_bad_payloads(sio_factory, room):
    sio = sio_factory()
    assert _join(sio, "nope", "Ann", "A") == {"ok": False, "error": "room_not_found"}
    assert _join(sio, "", "Ann", "A") == {"ok": False, "error": "invalid_payload"}
    assert _join(sio, room, "<b>", "A") == {"ok": False, "error": "invalid_name"}
    assert _join(sio, room, "", "A") == {"ok": False, "error": "invalid_name"}
    assert sio.emit("game:start", {}, callback=True) == {"ok": False, "error": "not_in_room"}


def test_turn_flow_over_sockets(sio_factory, room, games):
    seated = [_seat(sio_factory, room, "Ann"), _seat(sio_factory, room, "Bob")]
    host, guest = seated[0][0], seated[1][0]

    assert guest.emit("game:start", {}, callback=True) == {"ok": False, "error": "not_host"}
    host.get_received()
    guest.get_received()

    assert host.emit("game:start", {"roomCode": room}, callback=True) == {"ok": True}
    drawer_id = games.get_session(room).current_drawer_id
    (drawer, _), (guesser, guesser_id) = sorted(seated, key=lambda s: s[1] != drawer_id)

    private = [s for s in _events(drawer, "room:state") if "wordChoices" in s]
    assert private[-1]["wordChoices"] == WORDS[:3]
    assert all("wordChoices" not in s for s in _events(guesser, "room:state"))

    assert drawer.emit("game:choose_word", {"word": "apple"}, callback=True) == {"ok": True}
    states = _events(guesser, "room:state")
    assert states[-1]["status"] == "playing"
    assert states[-1]["wordHint"] == "_____"
    assert "word" not in states[-1]

    ack = guesser.emit("guess:submit", {"text": "banana"}, callback=True)
    assert ack == {"ok": True, "correct": False, "close": False}
    chat = _events(drawer, "chat:message")
    assert {"roomCode": room, "from": guesser_id, "text": "banana"} in chat

    assert drawer.emit("chat:message", {"text": "APPLE"}, callback=True) == {"ok": False, "error": "not_your_turn"}
    assert all(m["text"] != "APPLE" for m in _events(guesser, "chat:message"))

    ack = guesser.emit("guess:submit", {"text": "Apple"}, callback=True)
    assert ack == {"ok": True, "correct": True, "points": 100}
    received = guesser.get_received()
    assert any(m["name"] == "guess:correct" and m["args"][0]["by"] == guesser_id for m in received)
    reveal = [m["args"][0] for m in received if m["name"] == "game:reveal"]
    assert reveal == [{"roomCode": room, "word": "APPLE", "reason": "all_guessed"}]

    session = games.get_session(room)
    assert (session.status, session.current_drawer_id) == ("selecting", guesser_id)


def test_published_id_does_not_grant_a_seat(sio_factory, room, games):
    seated = [_seat(sio_factory, room, "Ann"), _seat(sio_factory, room, "Bob")]
    (drawer, drawer_id), _ = _start_playing(games, room, seated)

    intruder = sio_factory()
    ack = _join(intruder, room, "Eve", drawer_id)
    assert ack["ok"] is True
    assert ack["playerId"] not in {pid for _, pid in seated}

    states = _events(intruder, "room:state")
    assert states
    assert all("word" not in s and "wordChoices" not in s for s in states)

    assert intruder.emit("room:leave", {}, callback=True) == {"ok": True}
    session = games.get_session(room)
    assert (session.status, session.current_drawer_id) == ("playing", drawer_id)
    assert drawer_id in session.roster


def test_answer_inside_a_longer_message_is_not_relayed(sio_factory, room, games):
    seated = [_seat(sio_factory, room, name) for name in ("Ann", "Bob", "Cid")]
    (drawer, _), guessers = _start_playing(games, room, seated)
    (first, _), (second, _) = guessers

    ack = drawer.emit("chat:message", {"text": "its an APPLE lol"}, callback=True)
    assert ack == {"ok": False, "error": "not_your_turn"}

    assert first.emit("guess:submit", {"text": "apple"}, callback=True)["correct"] is True
    ack = first.emit("chat:message", {"text": "apple was easy!"}, callback=True)
    assert ack == {"ok": False, "error": "already_recorded"}

    ack = second.emit("chat:message", {"text": "is it an a-p-p-l-e?"}, callback=True)
    assert ack == {"ok": False, "error": "answer_in_message"}

    relayed = [m["text"] for m in _events(second, "chat:message") if m["from"] != "system"]
    assert relayed == []
    assert games.get_session(room).status == "playing"


def test_close_guess_is_told_to_the_guesser_only(sio_factory, room, games):
    seated = [_seat(sio_factory, room, "Ann"), _seat(sio_factory, room, "Bob")]
    (drawer, _), [(guesser, _)] = _start_playing(games, room, seated, word="CHERRY")

    assert guesser.emit("guess:submit", {"text": "cherri"}, callback=True)["close"] is True
    assert _events(guesser, "guess:close") == [{"roomCode": room}]
    assert _events(drawer, "guess:close") == []


def test_host_settings_over_sockets(sio_factory, room, games):
    host, _ = _seat(sio_factory, room, "Ann")
    guest, guest_id = _seat(sio_factory, room, "Bob")

    assert host.emit("room:set_rounds", {"maxRounds": 5}, callback=True) == {"ok": True}
    assert host.emit("room:set_rounds", {"maxRounds": "x"}, callback=True) == {"ok": False, "error": "invalid_setting"}
    assert guest.emit("room:set_round_duration", {"roundDurationSec": 30}, callback=True) == {
        "ok": False,
        "error": "not_host",
    }
    assert host.emit("room:transfer_host", {"newHostId": guest_id}, callback=True) == {"ok": True}

    session = games.get_session(room)
    assert (session.max_rounds, session.host_id) == (5, guest_id)


def test_leave_hands_over_host(sio_factory, room, games):
    host, _ = _seat(sio_factory, room, "Ann")
    _, guest_id = _seat(sio_factory, room, "Bob")

    assert host.emit("room:leave", {}, callback=True) == {"ok": True}
    assert games.get_session(room).host_id == guest_id
    assert host.emit("room:leave", {}, callback=True) == {"ok": False, "error": "not_in_room"}


def test_disconnect_then_reconnect_with_player_key(sio_factory, room, games, clock):
    _seat(sio_factory, room, "Ann")
    guest, guest_id = _seat(sio_factory, room, "Bob")

    guest.disconnect()
    assert games.get_session(room).roster[guest_id].connected is False

    again = sio_factory()
    assert _join(again, room, "Bob", "key-Bob") == {"ok": True, "playerId": guest_id}
    clock.advance(10_000)
    assert games.get_session(room).roster[guest_id].connected is True


def test_disconnected_player_is_dropped_after_grace(sio_factory, room, games, clock):
    _, host_id = _seat(sio_factory, room, "Ann")
    guest, _ = _seat(sio_factory, room, "Bob")

    guest.disconnect()
    clock.advance(5_000)
    assert list(games.get_session(room).roster) == [host_id]
