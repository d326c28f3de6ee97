from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    games = current_app.extensions["sketchturn"]
    return jsonify({"ok": True, "rooms": len(games.repository.list_codes())})
