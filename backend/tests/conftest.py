import random

import pytest

from sketchturn.config import Config
from sketchturn.game.clock import ManualClock
from sketchturn.game.engine import EngineSettings, TurnEngine
from sketchturn.game.models import Session
from sketchturn.game.repository import InMemorySessionRepository
from sketchturn.game.service import GameService
from sketchturn.server import create_app


WORDS = ["APPLE", "BANANA", "CHERRY", "DRAGON", "EAGLE", "FOREST"]


class FixedWords:
    """Always offers the first n words, so tests know the choices."""

    def pick_words(self, count):
        return WORDS[:count]


class TestConfig(Config):
    __test__ = False
    TESTING = True
    SOCKETIO_ASYNC_MODE = "threading"
    TRUST_PROXY_HEADERS = False
    MAX_ROUNDS = 2
    DISCONNECT_GRACE_SEC = 5
    EMPTY_ROOM_TTL_SEC = 10


def make_engine(**settings):
    rng = random.Random(7)
    return TurnEngine(settings=EngineSettings(**settings), words=FixedWords(), rng=rng)


def make_lobby(engine, ids, max_rounds=2, code="room1"):
    session = Session(code=code, max_rounds=max_rounds)
    for pid in ids:
        session = engine.add_player(session, pid, pid.lower()).session
    return session


def play_turn(engine, session, now_ms):
    """Drawer picks the first choice and every guesser gets it right."""
    session = engine.select_word(session, session.current_drawer_id, session.word_choices[0], now_ms).session
    word = session.current_word
    for pid in session.guessers:
        session = engine.submit_guess(session, pid, word, now_ms + 1000).session
    return session


@pytest.fixture()
def engine():
    return make_engine()


@pytest.fixture()
def clock():
    return ManualClock(start_ms=0)


@pytest.fixture()
def repository():
    return InMemorySessionRepository()


@pytest.fixture()
def service(repository, clock, engine):
    return GameService(repository, clock, engine, max_rounds=2, disconnect_grace_sec=5, empty_room_ttl_sec=10)


@pytest.fixture()
def flask_app(clock):
    app, socketio = create_app(TestConfig, clock=clock)
    app.extensions["sketchturn"].engine.words = FixedWords()
    app.extensions["test_socketio"] = socketio
    yield app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    socketio = flask_app.extensions["test_socketio"]
    created = []

    def factory():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        created.append(test_client)
        return test_client

    yield factory

    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
