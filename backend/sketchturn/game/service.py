from __future__ import annotations

import logging
import random
import uuid
from threading import RLock
from typing import Callable

from .clock import Clock, TimerHandle
from .engine import MAX_ROUNDS_RANGE, ROUND_DURATION_RANGE, EngineSettings, TurnEngine
from .models import LIVE_STATUSES, Effect, GuessOutcome, Outcome, Rejection, Session, TimerTag
from .repository import InMemorySessionRepository, SaveResult, SessionRepository
from .words import LocalWordSource, WordSource


logger = logging.getLogger(__name__)

EffectListener = Callable[[str, Effect], None]


class GameService:
    """Runs engine operations against the shared session store.

    State-advancing writes use compare-and-swap on the session version and
    are re-run once against fresh state on conflict. Guesses go through the
    repository's atomic read-modify-write. Deadlines are tracked per
    `TimerTag`, so a timer for a turn that already ended is a no-op.
    """

    def __init__(
        self,
        repository: SessionRepository,
        clock: Clock,
        engine: TurnEngine,
        max_rounds: int = 3,
        round_duration_sec: int = 60,
        choose_duration_sec: int = 12,
        empty_room_ttl_sec: int = 10,
        disconnect_grace_sec: int = 15,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.engine = engine
        self.max_rounds = max_rounds
        self.round_duration_sec = round_duration_sec
        self.choose_duration_sec = choose_duration_sec
        self.empty_room_ttl_sec = empty_room_ttl_sec
        self.disconnect_grace_sec = disconnect_grace_sec

        self._lock = RLock()
        self._turn_timers: dict[TimerTag, TimerHandle] = {}
        self._prune_timers: dict[tuple[str, str], TimerHandle] = {}
        self._cleanup_timers: dict[str, TimerHandle] = {}
        self._watches: dict[str, Callable[[], None]] = {}
        self._listeners: list[EffectListener] = []

    @classmethod
    def from_config(
        cls,
        config,
        clock: Clock,
        repository: SessionRepository | None = None,
        words: WordSource | None = None,
        rng: random.Random | None = None,
    ) -> GameService:
        rng = rng or random.Random()
        engine = TurnEngine(
            settings=EngineSettings.from_config(config),
            words=words or LocalWordSource(rng=rng),
            rng=rng,
        )
        return cls(
            repository=repository or InMemorySessionRepository(),
            clock=clock,
            engine=engine,
            max_rounds=int(config.MAX_ROUNDS),
            round_duration_sec=int(config.ROUND_DURATION_SEC),
            choose_duration_sec=int(config.CHOOSE_DURATION_SEC),
            empty_room_ttl_sec=int(config.EMPTY_ROOM_TTL_SEC),
            disconnect_grace_sec=int(config.DISCONNECT_GRACE_SEC),
        )

    # -- sessions ---------------------------------------------------------

    def create_session(self, max_rounds: int | None = None, round_duration_sec: int | None = None) -> Outcome:
        rounds = self.max_rounds if max_rounds is None else max_rounds
        duration = self.round_duration_sec if round_duration_sec is None else round_duration_sec
        if not isinstance(rounds, int) or not MAX_ROUNDS_RANGE[0] <= rounds <= MAX_ROUNDS_RANGE[1]:
            return Outcome(session=None, rejection=Rejection.INVALID_SETTING)
        if not isinstance(duration, int) or not ROUND_DURATION_RANGE[0] <= duration <= ROUND_DURATION_RANGE[1]:
            return Outcome(session=None, rejection=Rejection.INVALID_SETTING)

        code = uuid.uuid4().hex
        while self.repository.load(code) is not None:
            code = uuid.uuid4().hex

        session = self.repository.create(
            Session(
                code=code,
                max_rounds=rounds,
                round_duration_sec=duration,
                choose_duration_sec=self.choose_duration_sec,
                last_empty_at_ms=self.clock.now_ms(),
            )
        )
        logger.info("session created session=%s max_rounds=%s duration=%ss", code, rounds, duration)
        self._schedule_cleanup(code)
        return Outcome(session=session, changed=True)

    def get_session(self, code: str) -> Session | None:
        return self.repository.load(code)

    def list_sessions(self) -> list[Session]:
        sessions = (self.repository.load(code) for code in self.repository.list_codes())
        return [s for s in sessions if s is not None]

    def subscribe(self, code: str, callback: Callable[[Session], None]) -> Callable[[], None]:
        return self.repository.subscribe(code, callback)

    def add_listener(self, listener: EffectListener) -> None:
        self._listeners.append(listener)

    def watch(self, code: str) -> None:
        """Track deadlines of a session written by other processes too."""
        with self._lock:
            if code in self._watches:
                return
            self._watches[code] = self.repository.subscribe(code, self._on_session_change)
        session = self.repository.load(code)
        if session is not None:
            self._on_session_change(session)

    # -- presence ---------------------------------------------------------

    def join(self, code: str, player_id: str, name: str) -> Outcome:
        self._cancel_prune(code, player_id)
        outcome = self._apply(code, lambda s: self.engine.add_player(s, player_id, name, self.clock.now_ms()))
        if outcome.changed:
            logger.info("player joined session=%s player=%s", code, player_id)
        return outcome

    def leave(self, code: str, player_id: str) -> Outcome:
        self._cancel_prune(code, player_id)
        outcome = self._apply(code, lambda s: self.engine.remove_player(s, player_id, self.clock.now_ms()))
        if outcome.changed:
            logger.info("player left session=%s player=%s", code, player_id)
        return outcome

    def disconnect(self, code: str, player_id: str) -> Outcome:
        if self.disconnect_grace_sec <= 0:
            return self.leave(code, player_id)

        outcome = self._apply(code, lambda s: self.engine.set_connected(s, player_id, False))
        if outcome.ok:
            at_ms = self.clock.now_ms() + self.disconnect_grace_sec * 1000
            with self._lock:
                key = (code, player_id)
                if key not in self._prune_timers:
                    self._prune_timers[key] = self.clock.schedule_at(at_ms, key, self._on_prune)
            logger.info("player disconnected session=%s player=%s grace=%ss", code, player_id, self.disconnect_grace_sec)
        return outcome

    # -- game flow --------------------------------------------------------

    def start(self, code: str, player_id: str) -> Outcome:
        return self._apply(code, lambda s: self.engine.start_game(s, player_id, self.clock.now_ms()))

    def choose_word(self, code: str, player_id: str, word: str) -> Outcome:
        return self._apply(code, lambda s: self.engine.select_word(s, player_id, word, self.clock.now_ms()))

    def guess(self, code: str, player_id: str, text: str) -> GuessOutcome:
        outcome = self.repository.transact(
            code, lambda s: self.engine.submit_guess(s, player_id, text, self.clock.now_ms())
        )
        if outcome is None:
            return GuessOutcome(session=None, rejection=Rejection.SESSION_NOT_FOUND)
        if outcome.ok:
            self._after_commit(code, outcome)
        return outcome

    def advance(self, code: str, expected_turn: int | None = None, reason: str = "forced") -> Outcome:
        return self._apply(
            code,
            lambda s: self.engine.advance_turn(s, self.clock.now_ms(), reason=reason, expected_turn=expected_turn),
        )

    def replay(self, code: str, player_id: str, restart: bool = True) -> Outcome:
        return self._apply(code, lambda s: self.engine.replay(s, player_id, self.clock.now_ms(), restart=restart))

    def set_max_rounds(self, code: str, player_id: str, max_rounds: int) -> Outcome:
        return self._apply(code, lambda s: self.engine.set_max_rounds(s, player_id, max_rounds))

    def set_round_duration(self, code: str, player_id: str, duration_sec: int) -> Outcome:
        return self._apply(code, lambda s: self.engine.set_round_duration(s, player_id, duration_sec))

    def transfer_host(self, code: str, player_id: str, new_host_id: str) -> Outcome:
        return self._apply(code, lambda s: self.engine.transfer_host(s, player_id, new_host_id))

    def handle_timeout(self, code: str, tag: TimerTag) -> Outcome:
        outcome = self._apply(code, lambda s: self.engine.handle_timeout(s, tag, self.clock.now_ms()))
        if outcome.rejection in (Rejection.STALE_TIMER, Rejection.SESSION_NOT_FOUND):
            logger.debug("timer dropped session=%s turn=%s status=%s reason=%s", code, tag.turn_number, tag.status, outcome.rejection.value)
        elif outcome.rejection is Rejection.TIMER_NOT_DUE and outcome.session is not None:
            self._schedule_turn_timer(tag, outcome.session.turn_deadline_ms)
        elif outcome.changed:
            logger.info("timer fired session=%s turn=%s status=%s", code, tag.turn_number, tag.status)
        return outcome

    # -- write path -------------------------------------------------------

    def _apply(self, code: str, op: Callable[[Session], Outcome]) -> Outcome:
        session = self.repository.load(code)
        for attempt in (1, 2):
            if session is None:
                return Outcome(session=None, rejection=Rejection.SESSION_NOT_FOUND)

            outcome = op(session)
            if not outcome.ok or not outcome.changed:
                self._after_commit(code, outcome)
                return outcome

            result = self.repository.try_save(code, session.version, outcome.session)
            if result is SaveResult.OK:
                outcome.session.version = session.version + 1
                self._after_commit(code, outcome)
                return outcome

            logger.warning("write conflict session=%s version=%s attempt=%s", code, session.version, attempt)
            session = self.repository.load(code)

        return Outcome(session=session, rejection=Rejection.STALE_WRITE)

    def _after_commit(self, code: str, outcome: Outcome) -> None:
        if not outcome.ok:
            return

        for effect in outcome.effects:
            if effect.kind == "cancel":
                self._cancel_turn_timer(effect.data["tag"])
            elif effect.kind == "schedule":
                self._schedule_turn_timer(effect.data["tag"], effect.data["at_ms"])
            elif effect.kind == "turn_ended":
                logger.info(
                    "turn ended session=%s turn=%s reason=%s",
                    code,
                    effect.data.get("turn_number"),
                    effect.data.get("reason"),
                )

        for effect in outcome.effects:
            for listener in list(self._listeners):
                try:
                    listener(code, effect)
                except Exception:
                    logger.exception("effect listener failed session=%s kind=%s", code, effect.kind)

        if outcome.changed and outcome.session is not None:
            if outcome.session.roster:
                self._cancel_cleanup(code)
            else:
                self._schedule_cleanup(code)

    # -- timers -----------------------------------------------------------

    def _schedule_turn_timer(self, tag: TimerTag, at_ms: int | None) -> None:
        if at_ms is None:
            return
        with self._lock:
            if tag in self._turn_timers:
                return
            self._turn_timers[tag] = self.clock.schedule_at(at_ms, tag, self._on_turn_timer)

    def _cancel_turn_timer(self, tag: TimerTag) -> None:
        with self._lock:
            handle = self._turn_timers.pop(tag, None)
        if handle is not None:
            self.clock.cancel(handle)

    def _on_turn_timer(self, tag: TimerTag) -> None:
        with self._lock:
            self._turn_timers.pop(tag, None)
        self.handle_timeout(tag.code, tag)

    def _on_session_change(self, session: Session) -> None:
        tag = session.timer_tag
        with self._lock:
            stale = [t for t in self._turn_timers if t.code == session.code and t != tag]
        for t in stale:
            self._cancel_turn_timer(t)
        if tag is not None:
            self._schedule_turn_timer(tag, session.turn_deadline_ms)

    def _cancel_prune(self, code: str, player_id: str) -> None:
        with self._lock:
            handle = self._prune_timers.pop((code, player_id), None)
        if handle is not None:
            self.clock.cancel(handle)

    def _on_prune(self, key: tuple[str, str]) -> None:
        code, player_id = key
        with self._lock:
            self._prune_timers.pop(key, None)
        session = self.repository.load(code)
        if session is None:
            return
        player = session.roster.get(player_id)
        if player is None or player.connected:
            return
        logger.info("pruning disconnected player session=%s player=%s", code, player_id)
        self.leave(code, player_id)

    def _schedule_cleanup(self, code: str) -> None:
        at_ms = self.clock.now_ms() + self.empty_room_ttl_sec * 1000
        with self._lock:
            if code in self._cleanup_timers:
                return
            self._cleanup_timers[code] = self.clock.schedule_at(at_ms, code, self._on_cleanup)

    def _cancel_cleanup(self, code: str) -> None:
        with self._lock:
            handle = self._cleanup_timers.pop(code, None)
        if handle is not None:
            self.clock.cancel(handle)

    def _on_cleanup(self, code: str) -> None:
        with self._lock:
            self._cleanup_timers.pop(code, None)
        session = self.repository.load(code)
        if session is None or session.roster:
            return
        self.delete_session(code)

    def delete_session(self, code: str) -> bool:
        with self._lock:
            timers = [t for t in self._turn_timers if t.code == code]
            unwatch = self._watches.pop(code, None)
        for tag in timers:
            self._cancel_turn_timer(tag)
        self._cancel_cleanup(code)
        if unwatch is not None:
            unwatch()
        deleted = self.repository.delete(code)
        if deleted:
            logger.info("session deleted session=%s", code)
        return deleted


def public_state(session: Session, viewer_id: str | None = None) -> dict:
    players = []
    for pid in session.players:
        p = session.roster[pid]
        players.append(
            {
                "id": p.id,
                "name": p.name,
                "score": p.score,
                "connected": p.connected,
                "guessed": pid in session.guessed_player_ids,
            }
        )

    word_hint = None
    if session.current_word:
        word_hint = "".join(" " if ch == " " else "_" for ch in session.current_word)

    payload = {
        "code": session.code,
        "hostId": session.host_id,
        "status": session.status,
        "round": session.round,
        "maxRounds": session.max_rounds,
        "turnIndex": session.turn_index,
        "turnNumber": session.turn_number,
        "drawerId": session.current_drawer_id if session.status in LIVE_STATUSES else None,
        "roundDurationSec": session.round_duration_sec,
        "chooseDurationSec": session.choose_duration_sec,
        "turnDeadlineMs": session.turn_deadline_ms,
        "players": players,
        "wordHint": word_hint,
        "version": session.version,
    }

    if session.status == "finished" and session.current_word:
        payload["word"] = session.current_word

    if viewer_id and viewer_id == session.current_drawer_id and session.status in LIVE_STATUSES:
        if session.current_word:
            payload["word"] = session.current_word
        if session.status == "selecting" and session.word_choices:
            payload["wordChoices"] = list(session.word_choices)

    return payload
