from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from threading import RLock
from typing import Callable, Protocol, TypeVar

from .models import Outcome, Session


logger = logging.getLogger(__name__)

Subscriber = Callable[[Session], None]
O = TypeVar("O", bound=Outcome)


class SaveResult(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"


class SessionRepository(Protocol):
    def create(self, session: Session) -> Session:
        ...

    def load(self, code: str) -> Session | None:
        ...

    def try_save(self, code: str, expected_version: int, session: Session) -> SaveResult:
        ...

    def transact(self, code: str, fn: Callable[[Session], O]) -> O | None:
        ...

    def subscribe(self, code: str, callback: Subscriber) -> Callable[[], None]:
        ...

    def delete(self, code: str) -> bool:
        ...

    def list_codes(self) -> list[str]:
        ...


class InMemorySessionRepository:
    """Process-local session store with per-document versioning.

    Sessions are copied on the way in and out, so the stored document can
    only change through `try_save` or `transact`.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._sessions: dict[str, Session] = {}
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def create(self, session: Session) -> Session:
        with self._lock:
            if session.code in self._sessions:
                raise KeyError(f"session {session.code} already exists")
            stored = session.copy()
            stored.version = 1
            self._sessions[session.code] = stored
            return stored.copy()

    def load(self, code: str) -> Session | None:
        with self._lock:
            stored = self._sessions.get(code)
            return stored.copy() if stored is not None else None

    def try_save(self, code: str, expected_version: int, session: Session) -> SaveResult:
        with self._lock:
            stored = self._sessions.get(code)
            if stored is None or stored.version != expected_version:
                return SaveResult.CONFLICT
            committed = self._commit_locked(code, session, expected_version)
        self._notify(code, committed)
        return SaveResult.OK

    def transact(self, code: str, fn: Callable[[Session], O]) -> O | None:
        """Run `fn` against the stored session and commit its outcome atomically.

        Returns None when the session does not exist. The outcome's session
        carries the committed version when a change was written.
        """
        with self._lock:
            stored = self._sessions.get(code)
            if stored is None:
                return None
            outcome = fn(stored.copy())
            committed = None
            if outcome.ok and outcome.changed:
                committed = self._commit_locked(code, outcome.session, stored.version)
                outcome.session = committed.copy()
        if committed is not None:
            self._notify(code, committed)
        return outcome

    def subscribe(self, code: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[code].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(code)
                if subs and callback in subs:
                    subs.remove(callback)
                if not subs:
                    self._subscribers.pop(code, None)

        return unsubscribe

    def delete(self, code: str) -> bool:
        with self._lock:
            self._subscribers.pop(code, None)
            return self._sessions.pop(code, None) is not None

    def list_codes(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def _commit_locked(self, code: str, session: Session, expected_version: int) -> Session:
        committed = session.copy()
        committed.code = code
        committed.version = expected_version + 1
        self._sessions[code] = committed
        return committed.copy()

    def _notify(self, code: str, session: Session) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(code, ()))
        for callback in subscribers:
            try:
                callback(session.copy())
            except Exception:
                logger.exception("session subscriber failed session=%s", code)
