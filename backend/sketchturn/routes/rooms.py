from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game.engine import leaderboard
from ..game.service import GameService, public_state

bp = Blueprint("rooms", __name__)


def _games() -> GameService:
    return current_app.extensions["sketchturn"]


def _optional_int(data: dict, key: str) -> int | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(key)
    return int(raw)


@bp.post("/rooms")
def create_room():
    # Room is created empty; the first socket to join becomes host.
    data = request.get_json(silent=True) or {}
    try:
        max_rounds = _optional_int(data, "maxRounds")
        duration = _optional_int(data, "roundDurationSec")
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_setting"}), 400

    outcome = _games().create_session(max_rounds=max_rounds, round_duration_sec=duration)
    if not outcome.ok:
        return jsonify({"error": outcome.rejection.value}), 400
    return jsonify({"roomCode": outcome.session.code}), 201


@bp.get("/rooms/<code>")
def get_room(code: str):
    session = _games().get_session(code)
    if not session:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(public_state(session))


@bp.get("/rooms/<code>/leaderboard")
def get_leaderboard(code: str):
    session = _games().get_session(code)
    if not session:
        return jsonify({"error": "room_not_found"}), 404

    try:
        limit = int(request.args["limit"]) if "limit" in request.args else None
    except ValueError:
        return jsonify({"error": "invalid_limit"}), 400

    return jsonify({"status": session.status, "players": leaderboard(session, limit=limit)})
