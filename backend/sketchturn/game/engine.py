"""Turn, round and scoring progression for one drawing session.

The engine is pure: every operation takes the current `Session` and the
caller's notion of "now", and returns an `Outcome` holding the next session
plus the side effects the host should perform (timers, announcements).
Input sessions are never mutated and expected failures come back as a
`Rejection` instead of an exception.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Literal

from .models import (
    LIVE_STATUSES,
    Effect,
    GuessOutcome,
    Outcome,
    Player,
    Rejection,
    Session,
    TimerTag,
)
from .scoring import ScoringPolicy, is_close_guess, normalize_guess
from .words import DEFAULT_WORDS, LocalWordSource, WordSource, pick_words


AutoPickPolicy = Literal["first", "random"]
DrawerLeftPolicy = Literal["advance", "same_round"]

MAX_ROUNDS_RANGE = (1, 20)
ROUND_DURATION_RANGE = (10, 300)


@dataclass(frozen=True)
class EngineSettings:
    min_players: int = 2
    word_choices_count: int = 3
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)
    auto_pick: AutoPickPolicy = "first"
    drawer_left: DrawerLeftPolicy = "advance"
    close_guesses: bool = True

    @classmethod
    def from_config(cls, config) -> EngineSettings:
        return cls(
            min_players=max(2, int(config.MIN_PLAYERS)),
            word_choices_count=max(1, int(config.WORD_CHOICES_COUNT)),
            scoring=ScoringPolicy(
                base_guess_points=int(config.BASE_GUESS_POINTS),
                guess_time_bonus=int(config.GUESS_TIME_BONUS),
                base_drawer_points=int(config.BASE_DRAWER_POINTS),
                drawer_time_bonus=int(config.DRAWER_TIME_BONUS),
            ),
            auto_pick="random" if config.AUTO_PICK_POLICY == "random" else "first",
            drawer_left="same_round" if config.DRAWER_LEFT_POLICY == "same_round" else "advance",
            close_guesses=bool(config.CLOSE_GUESS_HINTS),
        )


def leaderboard(session: Session, limit: int | None = None) -> list[dict]:
    ranked = sorted(session.roster.values(), key=lambda p: (-p.score, p.name.casefold(), p.id))
    if limit is not None:
        ranked = ranked[: max(0, limit)]
    return [{"id": p.id, "name": p.name, "score": p.score} for p in ranked]


def _announce(text: str) -> Effect:
    return Effect("announce", {"text": text})


def _schedule(tag: TimerTag, at_ms: int) -> Effect:
    return Effect("schedule", {"tag": tag, "at_ms": at_ms})


def _cancel(tag: TimerTag) -> Effect:
    return Effect("cancel", {"tag": tag})


class TurnEngine:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        words: WordSource | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.rng = rng or random.Random()
        self.words = words or LocalWordSource(rng=self.rng)

    # -- presence ---------------------------------------------------------

    def add_player(self, session: Session, player_id: str, name: str, now_ms: int | None = None) -> Outcome:
        pid = (player_id or "").strip()
        if not pid:
            return Outcome(session=session, rejection=Rejection.UNKNOWN_PLAYER)

        s = session.copy()
        effects: list[Effect] = []
        display = (name or "").strip() or pid

        player = s.roster.get(pid)
        if player is None:
            s.roster[pid] = Player(id=pid, name=display)
            effects.append(_announce(f"{display} joined the room"))
        else:
            player.name = display
            player.connected = True

        if s.host_id is None or s.host_id not in s.roster:
            s.host_id = pid
        s.last_empty_at_ms = None

        if s.status in LIVE_STATUSES:
            s.turn_index = s.players.index(s.current_drawer_id)

        return Outcome(session=s, effects=effects, changed=True)

    def set_connected(self, session: Session, player_id: str, connected: bool) -> Outcome:
        player = session.roster.get(player_id)
        if player is None:
            return Outcome(session=session, rejection=Rejection.UNKNOWN_PLAYER)
        if player.connected == connected:
            return Outcome(session=session)

        s = session.copy()
        s.roster[player_id].connected = connected
        return Outcome(session=s, changed=True)

    def remove_player(self, session: Session, player_id: str, now_ms: int) -> Outcome:
        if player_id not in session.roster:
            return Outcome(session=session, rejection=Rejection.UNKNOWN_PLAYER)

        s = session.copy()
        effects: list[Effect] = []

        was_drawer = s.status in LIVE_STATUSES and player_id == s.current_drawer_id
        vacated_index = s.players.index(player_id)
        departed = s.roster.pop(player_id)
        s.guessed_player_ids.discard(player_id)
        effects.append(_announce(f"{departed.name} left the room"))

        if s.host_id == player_id:
            s.host_id = s.players[0] if s.players else None
        if not s.roster:
            s.last_empty_at_ms = now_ms

        if s.status in LIVE_STATUSES:
            if len(s.players) < self.settings.min_players:
                self._end_turn(s, "not_enough_players", effects)
                self._finish(s, effects)
            elif was_drawer:
                self._advance(s, now_ms, "drawer_left", effects, vacated_index=vacated_index)
            else:
                s.turn_index = s.players.index(s.current_drawer_id)
                if s.status == "playing" and self._everyone_guessed(s):
                    self._advance(s, now_ms, "all_guessed", effects)
        else:
            s.turn_index = min(s.turn_index, max(0, len(s.players) - 1))

        return Outcome(session=s, effects=effects, changed=True)

    # -- host controls ----------------------------------------------------

    def _host_check(self, session: Session, requested_by: str) -> Rejection | None:
        if requested_by not in session.roster:
            return Rejection.UNKNOWN_PLAYER
        if requested_by != session.host_id:
            return Rejection.NOT_HOST
        return None

    def set_max_rounds(self, session: Session, requested_by: str, max_rounds: int) -> Outcome:
        rejection = self._host_check(session, requested_by)
        if rejection is None and session.status != "waiting":
            rejection = Rejection.INVALID_TRANSITION
        if rejection is None and (
            not isinstance(max_rounds, int) or not MAX_ROUNDS_RANGE[0] <= max_rounds <= MAX_ROUNDS_RANGE[1]
        ):
            rejection = Rejection.INVALID_SETTING
        if rejection is not None:
            return Outcome(session=session, rejection=rejection)

        s = session.copy()
        s.max_rounds = max_rounds
        return Outcome(session=s, changed=True)

    def set_round_duration(self, session: Session, requested_by: str, duration_sec: int) -> Outcome:
        rejection = self._host_check(session, requested_by)
        if rejection is None and session.status != "waiting":
            rejection = Rejection.INVALID_TRANSITION
        if rejection is None and (
            not isinstance(duration_sec, int)
            or not ROUND_DURATION_RANGE[0] <= duration_sec <= ROUND_DURATION_RANGE[1]
        ):
            rejection = Rejection.INVALID_SETTING
        if rejection is not None:
            return Outcome(session=session, rejection=rejection)

        s = session.copy()
        s.round_duration_sec = duration_sec
        return Outcome(session=s, changed=True)

    def transfer_host(self, session: Session, requested_by: str, new_host_id: str) -> Outcome:
        rejection = self._host_check(session, requested_by)
        if rejection is None and new_host_id not in session.roster:
            rejection = Rejection.UNKNOWN_PLAYER
        if rejection is not None:
            return Outcome(session=session, rejection=rejection)

        s = session.copy()
        s.host_id = new_host_id
        return Outcome(session=s, changed=True)

    # -- game flow --------------------------------------------------------

    def start_game(self, session: Session, requested_by: str, now_ms: int) -> Outcome:
        rejection = self._host_check(session, requested_by)
        if rejection is None and session.status != "waiting":
            rejection = Rejection.INVALID_TRANSITION
        if rejection is None and len(session.players) < self.settings.min_players:
            rejection = Rejection.NOT_ENOUGH_PLAYERS
        if rejection is not None:
            return Outcome(session=session, rejection=rejection)

        s = session.copy()
        effects: list[Effect] = [_announce("The game has started")]
        s.turn_number = 0
        self._begin_selecting(s, 0, 1, now_ms, effects)
        return Outcome(session=s, effects=effects, changed=True)

    def select_word(self, session: Session, player_id: str, word: str, now_ms: int) -> Outcome:
        if player_id not in session.roster:
            return Outcome(session=session, rejection=Rejection.UNKNOWN_PLAYER)
        if session.status == "waiting":
            return Outcome(session=session, rejection=Rejection.GAME_NOT_STARTED)
        if session.status != "selecting":
            return Outcome(session=session, rejection=Rejection.INVALID_TRANSITION)
        if player_id != session.current_drawer_id:
            return Outcome(session=session, rejection=Rejection.NOT_YOUR_TURN)

        wanted = normalize_guess(word)
        chosen = next((w for w in session.word_choices if normalize_guess(w) == wanted), None)
        if not wanted or chosen is None:
            return Outcome(session=session, rejection=Rejection.INVALID_WORD)

        s = session.copy()
        effects: list[Effect] = []
        self._begin_playing(s, chosen, now_ms, effects)
        return Outcome(session=s, effects=effects, changed=True)

    def submit_guess(self, session: Session, guesser_id: str, text: str, now_ms: int) -> GuessOutcome:
        if guesser_id not in session.roster:
            return GuessOutcome(session=session, rejection=Rejection.UNKNOWN_PLAYER)

        word = session.current_word
        matched = bool(word) and normalize_guess(text) == normalize_guess(word)
        reveals = matched and session.status in LIVE_STATUSES

        rejection = None
        if session.status == "waiting":
            rejection = Rejection.GAME_NOT_STARTED
        elif session.status != "playing":
            rejection = Rejection.INVALID_TRANSITION
        elif guesser_id == session.current_drawer_id:
            rejection = Rejection.NOT_YOUR_TURN
        elif guesser_id in session.guessed_player_ids:
            rejection = Rejection.ALREADY_RECORDED
        if rejection is not None:
            return GuessOutcome(session=session, rejection=rejection, reveals_word=reveals)

        if not matched:
            close = self.settings.close_guesses and is_close_guess(text, word)
            effects = [Effect("guess_close", {"player_id": guesser_id})] if close else []
            return GuessOutcome(session=session, effects=effects, is_close=close)

        s = session.copy()
        effects: list[Effect] = []
        s.guessed_player_ids.add(guesser_id)

        remaining = (s.turn_deadline_ms - now_ms) if s.turn_deadline_ms is not None else 0
        duration = s.round_duration_sec * 1000
        points = self.settings.scoring.guesser_award(remaining, duration)
        drawer_points = self.settings.scoring.drawer_award(remaining, duration)

        guesser = s.roster[guesser_id]
        guesser.score += points
        drawer = s.roster.get(s.current_drawer_id or "")
        if drawer is not None:
            drawer.score += drawer_points

        effects.append(
            Effect(
                "guess_correct",
                {
                    "player_id": guesser_id,
                    "points": points,
                    "drawer_id": s.current_drawer_id,
                    "drawer_points": drawer_points if drawer is not None else 0,
                },
            )
        )
        effects.append(_announce(f"{guesser.name} guessed the word! (+{points})"))

        if self._everyone_guessed(s):
            self._advance(s, now_ms, "all_guessed", effects)

        return GuessOutcome(
            session=s,
            effects=effects,
            changed=True,
            is_correct=True,
            reveals_word=True,
            points=points,
        )

    def advance_turn(
        self,
        session: Session,
        now_ms: int,
        reason: str = "forced",
        expected_turn: int | None = None,
    ) -> Outcome:
        if session.status == "waiting":
            return Outcome(session=session, rejection=Rejection.GAME_NOT_STARTED)
        if session.status not in LIVE_STATUSES:
            return Outcome(session=session, rejection=Rejection.INVALID_TRANSITION)
        if expected_turn is not None and expected_turn != session.turn_number:
            return Outcome(session=session, rejection=Rejection.STALE_WRITE)

        s = session.copy()
        effects: list[Effect] = []
        self._advance(s, now_ms, reason, effects)
        return Outcome(session=s, effects=effects, changed=True)

    def handle_timeout(self, session: Session, tag: TimerTag, now_ms: int) -> Outcome:
        if tag is None or session.status not in LIVE_STATUSES or session.timer_tag != tag:
            return Outcome(session=session, rejection=Rejection.STALE_TIMER)
        if session.turn_deadline_ms is not None and now_ms < session.turn_deadline_ms:
            return Outcome(session=session, rejection=Rejection.TIMER_NOT_DUE)

        s = session.copy()
        effects: list[Effect] = []
        if s.status == "selecting":
            word = self._auto_pick(s)
            drawer = s.roster[s.current_drawer_id]
            effects.append(_announce(f"{drawer.name} ran out of time, a word was picked for them"))
            self._begin_playing(s, word, now_ms, effects)
        else:
            self._advance(s, now_ms, "timeout", effects)
        return Outcome(session=s, effects=effects, changed=True)

    def replay(self, session: Session, requested_by: str, now_ms: int, restart: bool = True) -> Outcome:
        """Zero the scores of a finished game and go back to the lobby.

        With `restart` the next game is started straight away for the same
        players, which is what the "play again" button does.
        """
        rejection = self._host_check(session, requested_by)
        if rejection is None and session.status != "finished":
            rejection = Rejection.INVALID_TRANSITION
        if rejection is None and len(session.players) < self.settings.min_players:
            rejection = Rejection.NOT_ENOUGH_PLAYERS
        if rejection is not None:
            return Outcome(session=session, rejection=rejection)

        s = session.copy()
        for player in s.roster.values():
            player.score = 0
        s.status = "waiting"
        s.round = 1
        s.turn_index = 0
        s.turn_number = 0
        s.current_drawer_id = None
        s.current_word = ""
        s.word_choices = []
        s.guessed_player_ids = set()
        s.turn_deadline_ms = None
        effects: list[Effect] = [_announce("Scores were reset for a new game")]

        if restart:
            effects.append(_announce("The game has started"))
            self._begin_selecting(s, 0, 1, now_ms, effects)
        return Outcome(session=s, effects=effects, changed=True)

    # -- internals --------------------------------------------------------

    def _everyone_guessed(self, s: Session) -> bool:
        guessers = s.guessers
        return bool(guessers) and all(pid in s.guessed_player_ids for pid in guessers)

    def _draw_choices(self) -> list[str]:
        n = self.settings.word_choices_count
        choices = [w for w in self.words.pick_words(n) if isinstance(w, str) and w.strip()]
        if not choices:
            choices = pick_words(DEFAULT_WORDS, n, rng=self.rng)
        return choices[:n]

    def _auto_pick(self, s: Session) -> str:
        choices = s.word_choices or self._draw_choices()
        if self.settings.auto_pick == "random":
            return self.rng.choice(choices)
        return choices[0]

    def _begin_selecting(self, s: Session, index: int, round_no: int, now_ms: int, effects: list[Effect]) -> None:
        s.status = "selecting"
        s.round = round_no
        s.turn_index = index
        s.turn_number += 1
        s.current_drawer_id = s.players[index]
        s.current_word = ""
        s.word_choices = self._draw_choices()
        s.guessed_player_ids = set()
        s.turn_deadline_ms = now_ms + s.choose_duration_sec * 1000

        drawer = s.roster[s.current_drawer_id]
        effects.append(_schedule(s.timer_tag, s.turn_deadline_ms))
        effects.append(_announce(f"Round {s.round}/{s.max_rounds}: {drawer.name} is choosing a word"))

    def _begin_playing(self, s: Session, word: str, now_ms: int, effects: list[Effect]) -> None:
        effects.append(_cancel(s.timer_tag))
        s.status = "playing"
        s.current_word = word
        s.word_choices = []
        s.guessed_player_ids = set()
        s.turn_deadline_ms = now_ms + s.round_duration_sec * 1000
        effects.append(_schedule(s.timer_tag, s.turn_deadline_ms))

    def _end_turn(self, s: Session, reason: str, effects: list[Effect]) -> None:
        effects.append(_cancel(s.timer_tag))
        effects.append(
            Effect(
                "turn_ended",
                {
                    "reason": reason,
                    "word": s.current_word,
                    "drawer_id": s.current_drawer_id,
                    "round": s.round,
                    "turn_number": s.turn_number,
                },
            )
        )
        if s.current_word:
            effects.append(_announce(f"The word was {s.current_word}"))

    def _finish(self, s: Session, effects: list[Effect]) -> None:
        s.status = "finished"
        s.word_choices = []
        s.turn_deadline_ms = None
        board = leaderboard(s)
        effects.append(Effect("game_over", {"leaderboard": board}))
        if board:
            effects.append(_announce(f"Game over! {board[0]['name']} wins with {board[0]['score']} points"))

    def _advance(
        self,
        s: Session,
        now_ms: int,
        reason: str,
        effects: list[Effect],
        vacated_index: int | None = None,
    ) -> None:
        self._end_turn(s, reason, effects)

        n = len(s.players)
        if n < self.settings.min_players or n == 0:
            self._finish(s, effects)
            return

        if vacated_index is None:
            next_index = (s.turn_index + 1) % n
            wrapped = next_index <= s.turn_index
        else:
            # The player who slid into the departed drawer's seat goes next.
            wrapped = vacated_index >= n
            next_index = 0 if wrapped else vacated_index
            if self.settings.drawer_left == "same_round":
                wrapped = False

        next_round = s.round + 1 if wrapped else s.round
        if next_round > s.max_rounds:
            self._finish(s, effects)
            return

        self._begin_selecting(s, next_index, next_round, now_ms, effects)
