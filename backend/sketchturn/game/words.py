from __future__ import annotations

import random
from typing import Iterable, Protocol


DEFAULT_WORDS = [
    "CAT",
    "DOG",
    "PIZZA",
    "SUN",
    "CAR",
    "HOUSE",
    "TREE",
    "BOOK",
    "APPLE",
    "BANANA",
    "GUITAR",
    "ROCKET",
    "UMBRELLA",
    "BICYCLE",
    "ELEPHANT",
    "SNOWMAN",
    "CASTLE",
    "RAINBOW",
    "PENGUIN",
    "VOLCANO",
    "LIGHTHOUSE",
    "SUBMARINE",
    "CACTUS",
    "DRAGON",
    "TOOTHBRUSH",
    "HOT AIR BALLOON",
    "ICE CREAM",
    "SPIDER WEB",
    "TREASURE MAP",
    "WINDMILL",
]


class WordSource(Protocol):
    def pick_words(self, count: int) -> list[str]:
        ...


def unique_words(words: Iterable[str]) -> list[str]:
    """Strip blanks and drop case-insensitive duplicates, keeping first spelling."""
    seen: set[str] = set()
    out: list[str] = []
    for w in words:
        if not isinstance(w, str):
            continue
        word = " ".join(w.split())
        key = word.casefold()
        if not word or key in seen:
            continue
        seen.add(key)
        out.append(word)
    return out


def pick_words(words: Iterable[str], count: int, rng: random.Random | None = None) -> list[str]:
    pool = unique_words(words)
    count = max(0, min(int(count), len(pool)))
    return (rng or random).sample(pool, count)


class LocalWordSource:
    """Draws choices from a bundled list, with host-supplied words in front."""

    def __init__(
        self,
        words: Iterable[str] | None = None,
        custom_words: Iterable[str] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.words = unique_words(list(custom_words or []) + list(words if words is not None else DEFAULT_WORDS))
        self.rng = rng or random.Random()

    def pick_words(self, count: int) -> list[str]:
        return pick_words(self.words, count, rng=self.rng)
