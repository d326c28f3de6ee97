from dotenv import load_dotenv

load_dotenv()

try:
    from backend.sketchturn.server import create_app
except ImportError:  # pragma: no cover
    from sketchturn.server import create_app

app, socketio = create_app()
