from __future__ import annotations

import logging
import uuid
from typing import Any

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game.models import LIVE_STATUSES, Effect, Outcome, Rejection, Session
from ..game.scoring import normalize_guess
from ..game.service import GameService, public_state


logger = logging.getLogger(__name__)

MAX_TEXT_LEN = 200


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > 16:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _squash(text: str) -> str:
    return "".join(ch for ch in normalize_guess(text) if ch.isalnum())


def _contains_answer(text: str, word: str) -> bool:
    answer = _squash(word)
    return bool(answer) and answer in _squash(text)


def _error(event: str, code: str) -> dict:
    emit(event, {"error": code})
    return {"ok": False, "error": code}


def _result(outcome: Outcome, event: str = "game:error") -> dict:
    if outcome.ok:
        return {"ok": True}
    return _error(event, outcome.rejection.value)


def register_socketio_handlers(socketio: SocketIO, games: GameService) -> None:
    # sid -> (room_code, player_id), and the reverse for private messages.
    seats: dict[str, tuple[str, str]] = {}
    player_sids: dict[tuple[str, str], str] = {}
    # (room_code, playerKey) -> public player id. Do NOT expose player keys to other clients.
    key_index: dict[tuple[str, str], str] = {}
    seat_keys: dict[tuple[str, str], str] = {}
    subscribed: set[str] = set()

    def _broadcast_session(session: Session) -> None:
        socketio.emit("room:state", public_state(session), to=session.code)

        if session.current_drawer_id:
            drawer_sid = player_sids.get((session.code, session.current_drawer_id))
            if drawer_sid:
                private_state = public_state(session, viewer_id=session.current_drawer_id)
                socketio.emit("room:state", private_state, to=drawer_sid)

    def _safe_broadcast(session: Session) -> None:
        try:
            _broadcast_session(session)
        except Exception:
            logger.exception("room:state broadcast failed session=%s", session.code)

    def _ensure_subscribed(room_code: str) -> None:
        if room_code in subscribed:
            return
        subscribed.add(room_code)
        games.subscribe(room_code, _safe_broadcast)
        games.watch(room_code)

    def _on_effect(room_code: str, effect: Effect) -> None:
        data = effect.data
        if effect.kind == "announce":
            socketio.emit("chat:message", {"roomCode": room_code, "from": "system", "text": data["text"]}, to=room_code)
        elif effect.kind == "guess_correct":
            socketio.emit(
                "guess:correct",
                {"roomCode": room_code, "by": data["player_id"], "points": data["points"]},
                to=room_code,
            )
        elif effect.kind == "guess_close":
            sid = player_sids.get((room_code, data["player_id"]))
            if sid:
                socketio.emit("guess:close", {"roomCode": room_code}, to=sid)
        elif effect.kind == "turn_ended":
            socketio.emit(
                "game:reveal",
                {"roomCode": room_code, "word": data["word"], "reason": data["reason"]},
                to=room_code,
            )
        elif effect.kind == "game_over":
            socketio.emit("game:over", {"roomCode": room_code, "leaderboard": data["leaderboard"]}, to=room_code)

    games.add_listener(_on_effect)

    def _seat(payload: dict) -> tuple[str, str] | None:
        seat = seats.get(request.sid)
        if seat is None:
            return None
        room_code = str(payload.get("roomCode", "")).strip()
        if room_code and room_code != seat[0]:
            return None
        return seat

    def _release(sid: str) -> tuple[str, str] | None:
        seat = seats.pop(sid, None)
        if seat is not None and player_sids.get(seat) == sid:
            del player_sids[seat]
            return seat
        return None

    def _forget(seat: tuple[str, str]) -> None:
        key = seat_keys.pop(seat, None)
        if key is not None:
            key_index.pop((seat[0], key), None)

    @socketio.on("room:join")
    def room_join(data):
        payload = data or {}
        room_code = str(payload.get("roomCode", "")).strip()
        name = str(payload.get("name", "")).strip()
        player_key = str(payload.get("playerKey", "")).strip()

        if not room_code:
            return _error("room:error", "invalid_payload")
        if not _validate_name(name):
            return _error("room:error", "invalid_name")

        if games.get_session(room_code) is None:
            return _error("room:error", "room_not_found")

        # Switching rooms: free the previous seat first.
        previous = _release(request.sid)
        if previous is not None and previous[0] != room_code:
            leave_room(previous[0])
            _forget(previous)
            games.leave(*previous)
            previous = None

        # Seats are reclaimed by the secret playerKey only; public ids are random.
        player_id = key_index.get((room_code, player_key)) if player_key else None
        if player_id is None:
            player_id = previous[1] if previous is not None else uuid.uuid4().hex
        if previous is not None and previous[1] != player_id:
            _forget(previous)
            games.leave(*previous)

        old_sid = player_sids.get((room_code, player_id))
        if old_sid and old_sid != request.sid:
            # Reconnect via playerKey: the new socket takes over the seat.
            seats.pop(old_sid, None)

        seats[request.sid] = (room_code, player_id)
        player_sids[(room_code, player_id)] = request.sid
        join_room(room_code)
        _ensure_subscribed(room_code)

        outcome = games.join(room_code, player_id, name)
        if not outcome.ok:
            _release(request.sid)
            leave_room(room_code)
            return _error("room:error", outcome.rejection.value)

        if player_key:
            key_index[(room_code, player_key)] = player_id
            seat_keys[(room_code, player_id)] = player_key

        emit("room:joined", {"roomCode": room_code, "playerId": player_id})
        return {"ok": True, "playerId": player_id}

    @socketio.on("room:leave")
    def room_leave(data):
        seat = _seat(data or {})
        if seat is None:
            return _error("room:error", "not_in_room")

        _release(request.sid)
        leave_room(seat[0])
        _forget(seat)
        return _result(games.leave(*seat), event="room:error")

    @socketio.on("room:set_rounds")
    def room_set_rounds(data):
        payload = data or {}
        seat = _seat(payload)
        if seat is None:
            return _error("room:error", "not_in_room")

        rounds_raw: Any = payload.get("maxRounds")
        try:
            max_rounds = int(rounds_raw)
        except (TypeError, ValueError):
            return _error("room:error", "invalid_setting")

        return _result(games.set_max_rounds(seat[0], seat[1], max_rounds), event="room:error")

    @socketio.on("room:set_round_duration")
    def room_set_round_duration(data):
        payload = data or {}
        seat = _seat(payload)
        if seat is None:
            return _error("room:error", "not_in_room")

        duration_raw: Any = payload.get("roundDurationSec")
        try:
            duration_sec = int(duration_raw)
        except (TypeError, ValueError):
            return _error("room:error", "invalid_setting")

        return _result(games.set_round_duration(seat[0], seat[1], duration_sec), event="room:error")

    @socketio.on("room:transfer_host")
    def room_transfer_host(data):
        payload = data or {}
        seat = _seat(payload)
        new_host_id = str(payload.get("newHostId", "")).strip()
        if seat is None:
            return _error("room:error", "not_in_room")
        if not new_host_id:
            return _error("room:error", "invalid_payload")

        return _result(games.transfer_host(seat[0], seat[1], new_host_id), event="room:error")

    @socketio.on("game:start")
    def game_start(data):
        seat = _seat(data or {})
        if seat is None:
            return _error("game:error", "not_in_room")
        return _result(games.start(*seat))

    @socketio.on("game:choose_word")
    def game_choose_word(data):
        payload = data or {}
        seat = _seat(payload)
        word = str(payload.get("word", "")).strip()
        if seat is None:
            return _error("game:error", "not_in_room")
        if not word:
            return _error("game:error", "invalid_word")

        return _result(games.choose_word(seat[0], seat[1], word))

    @socketio.on("game:replay")
    def game_replay(data):
        payload = data or {}
        seat = _seat(payload)
        if seat is None:
            return _error("game:error", "not_in_room")

        restart = bool(payload.get("restart", True))
        return _result(games.replay(seat[0], seat[1], restart=restart))

    def _submit_text(data):
        payload = data or {}
        seat = _seat(payload)
        text = str(payload.get("text", ""))[:MAX_TEXT_LEN]
        if seat is None:
            return _error("game:error", "not_in_room")
        if not text.strip():
            return {"ok": False, "error": "empty_message"}

        room_code, player_id = seat
        outcome = games.guess(room_code, player_id, text)

        if outcome.is_correct:
            return {"ok": True, "correct": True, "points": outcome.points}

        if outcome.rejection in (Rejection.SESSION_NOT_FOUND, Rejection.UNKNOWN_PLAYER):
            return _error("game:error", outcome.rejection.value)

        session = outcome.session
        live = session is not None and session.status in LIVE_STATUSES
        if outcome.reveals_word or (live and _contains_answer(text, session.current_word)):
            # Never relay the answer, whoever typed it.
            if outcome.rejection is Rejection.NOT_YOUR_TURN:
                notice = "The drawer can't send the answer"
            elif outcome.rejection is Rejection.ALREADY_RECORDED:
                notice = "You already guessed the word"
            else:
                notice = "Send the word on its own to guess"
            emit("chat:message", {"roomCode": room_code, "from": "system", "text": notice})
            error = outcome.rejection.value if outcome.rejection else "answer_in_message"
            return {"ok": False, "error": error}

        socketio.emit("chat:message", {"roomCode": room_code, "from": player_id, "text": text}, to=room_code)
        return {"ok": True, "correct": False, "close": outcome.is_close}

    socketio.on_event("guess:submit", _submit_text)
    socketio.on_event("chat:message", _submit_text)

    @socketio.on("disconnect")
    def on_disconnect(*args):
        seat = _release(request.sid)
        if seat is None:
            return
        games.disconnect(*seat)
