import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Empty means: pick from platform (see server.create_app)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    # Game
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))
    MAX_ROUNDS = int(os.environ.get("MAX_ROUNDS", "3"))
    WORD_CHOICES_COUNT = int(os.environ.get("WORD_CHOICES_COUNT", "3"))
    CHOOSE_DURATION_SEC = int(os.environ.get("CHOOSE_DURATION_SEC", "12"))
    ROUND_DURATION_SEC = int(os.environ.get("ROUND_DURATION_SEC", "60"))

    # "first" or "random" choice when the drawer does not pick in time
    AUTO_PICK_POLICY = os.environ.get("AUTO_PICK_POLICY", "first")
    # "advance" or "same_round" when the drawer leaves mid-turn
    DRAWER_LEFT_POLICY = os.environ.get("DRAWER_LEFT_POLICY", "advance")
    CLOSE_GUESS_HINTS = os.environ.get("CLOSE_GUESS_HINTS", "1") == "1"

    # Scoring: base + bonus * (time left / turn length)
    BASE_GUESS_POINTS = int(os.environ.get("BASE_GUESS_POINTS", "10"))
    GUESS_TIME_BONUS = int(os.environ.get("GUESS_TIME_BONUS", "90"))
    BASE_DRAWER_POINTS = int(os.environ.get("BASE_DRAWER_POINTS", "5"))
    DRAWER_TIME_BONUS = int(os.environ.get("DRAWER_TIME_BONUS", "20"))

    # Rooms
    EMPTY_ROOM_TTL_SEC = int(os.environ.get("EMPTY_ROOM_TTL_SEC", "10"))
    DISCONNECT_GRACE_SEC = int(os.environ.get("DISCONNECT_GRACE_SEC", "15"))
