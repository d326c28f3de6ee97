def _create_room(client, **body):
    response = client.post("/api/rooms", json=body)
    assert response.status_code == 201
    return response.get_json()["roomCode"]


def test_health_counts_rooms(client):
    assert client.get("/api/health").get_json() == {"ok": True, "rooms": 0}
    _create_room(client)
    assert client.get("/api/health").get_json() == {"ok": True, "rooms": 1}


def test_create_and_fetch_room(client):
    code = _create_room(client, maxRounds=4, roundDurationSec=45)

    state = client.get(f"/api/rooms/{code}").get_json()
    assert state["code"] == code
    assert state["status"] == "waiting"
    assert (state["maxRounds"], state["roundDurationSec"]) == (4, 45)
    assert state["players"] == []
    assert state["drawerId"] is None


def test_create_room_uses_configured_defaults(client):
    code = _create_room(client)
    state = client.get(f"/api/rooms/{code}").get_json()
    assert state["maxRounds"] == 2
    assert state["roundDurationSec"] == 60


def test_create_room_rejects_bad_settings(client):
    for body in ({"maxRounds": 0}, {"maxRounds": "lots"}, {"roundDurationSec": 1000}, {"maxRounds": True}):
        response = client.post("/api/rooms", json=body)
        assert response.status_code == 400
        assert response.get_json() == {"error": "invalid_setting"}


def test_unknown_room_is_404(client):
    assert client.get("/api/rooms/nope").status_code == 404
    assert client.get("/api/rooms/nope/leaderboard").get_json() == {"error": "room_not_found"}


def test_leaderboard(client, flask_app):
    code = _create_room(client)
    games = flask_app.extensions["sketchturn"]
    games.join(code, "A", "ann")
    games.join(code, "B", "bob")

    body = client.get(f"/api/rooms/{code}/leaderboard").get_json()
    assert body["status"] == "waiting"
    assert [p["id"] for p in body["players"]] == ["A", "B"]

    assert len(client.get(f"/api/rooms/{code}/leaderboard?limit=1").get_json()["players"]) == 1
    assert client.get(f"/api/rooms/{code}/leaderboard?limit=x").status_code == 400


def test_words_endpoint(client):
    words = client.get("/api/words").get_json()["words"]
    assert len(words) == 3

    words = client.get("/api/words?count=50").get_json()["words"]
    assert len(words) == 10
    assert len({w.casefold() for w in words}) == 10

    assert len(client.get("/api/words?count=abc").get_json()["words"]) == 3
