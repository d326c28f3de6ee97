from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ScoringPolicy:
    """Points awarded per correct guess.

    Each award is a flat base plus a bonus proportional to the time left in
    the turn. Awards are computed independently in integer arithmetic and
    floored, so repeated turns never accumulate rounding.
    """

    base_guess_points: int = 10
    guess_time_bonus: int = 90
    base_drawer_points: int = 5
    drawer_time_bonus: int = 20

    def guesser_award(self, remaining_ms: int, duration_ms: int) -> int:
        return _award(self.base_guess_points, self.guess_time_bonus, remaining_ms, duration_ms)

    def drawer_award(self, remaining_ms: int, duration_ms: int) -> int:
        return _award(self.base_drawer_points, self.drawer_time_bonus, remaining_ms, duration_ms)


def _award(base: int, bonus: int, remaining_ms: int, duration_ms: int) -> int:
    if duration_ms <= 0:
        return max(0, base)
    remaining = min(max(0, remaining_ms), duration_ms)
    return max(0, base + (bonus * remaining) // duration_ms)


def normalize_guess(text: str) -> str:
    return " ".join((text or "").split()).casefold()


def edit_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def close_threshold(word: str) -> int:
    return max(1, len(word) // 5)


def is_close_guess(guess: str, word: str) -> bool:
    g = normalize_guess(guess)
    w = normalize_guess(word)
    if not g or not w or g == w:
        return False
    # Cheap length gate before the quadratic distance.
    if abs(len(g) - len(w)) > close_threshold(w):
        return False
    return edit_distance(g, w) <= close_threshold(w)
