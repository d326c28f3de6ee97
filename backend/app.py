import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def _wants_eventlet() -> bool:
    mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if mode:
        return mode == "eventlet"
    return not sys.platform.startswith("win") and sys.version_info < (3, 13)


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")

    # Must run before anything imports socket/threading.
    if _wants_eventlet():
        import eventlet

        eventlet.monkey_patch()

    _configure_logging()

    try:
        from backend.sketchturn.server import create_app
    except ImportError:  # pragma: no cover
        from sketchturn.server import create_app

    app, socketio = create_app()
    logging.getLogger(__name__).info("sketchturn starting async_mode=%s", socketio.server.async_mode)

    socketio.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=os.environ.get("FLASK_DEBUG", "1") == "1",
        allow_unsafe_werkzeug=os.environ.get("ALLOW_UNSAFE_WERKZEUG", "1") == "1",
        use_reloader=os.environ.get("FLASK_USE_RELOADER", "0") == "1",
    )


if __name__ == "__main__":
    main()
