from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


SessionStatus = Literal["waiting", "selecting", "playing", "finished"]
EffectKind = Literal[
    "announce",
    "schedule",
    "cancel",
    "guess_correct",
    "guess_close",
    "turn_ended",
    "game_over",
]

LIVE_STATUSES = ("selecting", "playing")


class Rejection(str, Enum):
    INVALID_TRANSITION = "invalid_transition"
    GAME_NOT_STARTED = "game_not_started"
    NOT_YOUR_TURN = "not_your_turn"
    NOT_HOST = "not_host"
    ALREADY_RECORDED = "already_recorded"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    UNKNOWN_PLAYER = "unknown_player"
    INVALID_WORD = "invalid_word"
    INVALID_SETTING = "invalid_setting"
    STALE_WRITE = "stale_write"
    STALE_TIMER = "stale_timer"
    TIMER_NOT_DUE = "timer_not_due"
    SESSION_NOT_FOUND = "session_not_found"


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    connected: bool = True


@dataclass(frozen=True)
class TimerTag:
    code: str
    turn_number: int
    status: str


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Session:
    code: str
    host_id: str | None = None
    status: SessionStatus = "waiting"
    roster: dict[str, Player] = field(default_factory=dict)
    current_drawer_id: str | None = None
    current_word: str = ""
    word_choices: list[str] = field(default_factory=list)
    round: int = 1
    max_rounds: int = 3
    turn_index: int = 0
    turn_number: int = 0
    guessed_player_ids: set[str] = field(default_factory=set)
    turn_deadline_ms: int | None = None
    round_duration_sec: int = 60
    choose_duration_sec: int = 12
    version: int = 0
    last_empty_at_ms: int | None = None

    @property
    def players(self) -> list[str]:
        # Rotation order: every client sorts ids the same way.
        return sorted(self.roster)

    @property
    def guessers(self) -> list[str]:
        return [pid for pid in self.players if pid != self.current_drawer_id]

    @property
    def timer_tag(self) -> TimerTag | None:
        if self.status not in LIVE_STATUSES:
            return None
        return TimerTag(code=self.code, turn_number=self.turn_number, status=self.status)

    def copy(self) -> Session:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "hostId": self.host_id,
            "status": self.status,
            "players": [
                {"id": p.id, "name": p.name, "score": p.score, "connected": p.connected}
                for p in (self.roster[pid] for pid in self.players)
            ],
            "currentDrawerId": self.current_drawer_id,
            "currentWord": self.current_word,
            "wordChoices": list(self.word_choices),
            "round": self.round,
            "maxRounds": self.max_rounds,
            "turnIndex": self.turn_index,
            "turnNumber": self.turn_number,
            "guessedPlayerIds": sorted(self.guessed_player_ids),
            "turnDeadlineMs": self.turn_deadline_ms,
            "roundDurationSec": self.round_duration_sec,
            "chooseDurationSec": self.choose_duration_sec,
            "version": self.version,
            "lastEmptyAtMs": self.last_empty_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        roster: dict[str, Player] = {}
        for raw in data.get("players") or []:
            player = normalize_player(raw)
            if player is not None:
                roster[player.id] = player

        return cls(
            code=str(data.get("code", "")),
            host_id=data.get("hostId"),
            status=data.get("status", "waiting"),
            roster=roster,
            current_drawer_id=data.get("currentDrawerId"),
            current_word=data.get("currentWord") or "",
            word_choices=list(data.get("wordChoices") or []),
            round=int(data.get("round", 1)),
            max_rounds=int(data.get("maxRounds", 3)),
            turn_index=int(data.get("turnIndex", 0)),
            turn_number=int(data.get("turnNumber", 0)),
            guessed_player_ids=set(data.get("guessedPlayerIds") or []),
            turn_deadline_ms=data.get("turnDeadlineMs"),
            round_duration_sec=int(data.get("roundDurationSec", 60)),
            choose_duration_sec=int(data.get("chooseDurationSec", 12)),
            version=int(data.get("version", 0)),
            last_empty_at_ms=data.get("lastEmptyAtMs"),
        )


def normalize_player(raw: Any) -> Player | None:
    """Coerce a stored player entry into a `Player`.

    Older documents stored either a bare uid string or an object keyed
    `uid` with `points`/`displayName`; newer ones use `id`/`name`/`score`.
    """
    if isinstance(raw, Player):
        return copy.copy(raw)
    if isinstance(raw, str):
        pid = raw.strip()
        return Player(id=pid, name=pid) if pid else None
    if not isinstance(raw, dict):
        return None

    pid = str(raw.get("id") or raw.get("uid") or "").strip()
    if not pid:
        return None
    name = str(raw.get("name") or raw.get("displayName") or pid)
    try:
        score = int(raw.get("score", raw.get("points", 0)) or 0)
    except (TypeError, ValueError):
        score = 0
    return Player(
        id=pid,
        name=name,
        score=max(0, score),
        connected=bool(raw.get("connected", True)),
    )


@dataclass
class Outcome:
    session: Session | None
    effects: list[Effect] = field(default_factory=list)
    rejection: Rejection | None = None
    changed: bool = False

    @property
    def ok(self) -> bool:
        return self.rejection is None


@dataclass
class GuessOutcome(Outcome):
    is_correct: bool = False
    is_close: bool = False
    reveals_word: bool = False
    points: int = 0
