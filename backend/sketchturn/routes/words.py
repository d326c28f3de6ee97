from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game.words import LocalWordSource

bp = Blueprint("words", __name__)


@bp.get("/words")
def get_words():
    try:
        count = int(request.args.get("count", str(current_app.config["WORD_CHOICES_COUNT"])))
    except ValueError:
        count = current_app.config["WORD_CHOICES_COUNT"]
    count = max(1, min(count, 10))

    # Custom words: comma separated, or multiple words[] query params
    custom_words: list[str] = []
    if request.args.get("custom"):
        custom_words.extend([w.strip() for w in request.args.get("custom", "").split(",") if w.strip()])
    custom_words.extend([w.strip() for w in request.args.getlist("words[]") if w.strip()])

    source = LocalWordSource(custom_words=custom_words)
    return jsonify({"words": source.pick_words(count)})
