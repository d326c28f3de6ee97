import random

from sketchturn.game.words import DEFAULT_WORDS, LocalWordSource, pick_words, unique_words


def test_unique_words_drops_blanks_and_case_duplicates():
    assert unique_words(["Cat", " cat ", "", "  ", "DOG", "hot  air"]) == ["Cat", "DOG", "hot air"]


def test_pick_words_distinct_and_bounded():
    words = pick_words(["a", "b", "c", "A"], 10, rng=random.Random(1))
    assert sorted(words) == ["a", "b", "c"]
    assert pick_words(["a", "b"], 0) == []


def test_local_source_returns_requested_count():
    source = LocalWordSource(rng=random.Random(5))
    words = source.pick_words(3)
    assert len(words) == 3
    assert len({w.casefold() for w in words}) == 3
    assert all(w in DEFAULT_WORDS for w in words)


def test_custom_words_join_the_pool():
    source = LocalWordSource(words=["tree"], custom_words=["Moon", "TREE"], rng=random.Random(2))
    assert source.words == ["Moon", "TREE"]
    assert sorted(source.pick_words(5)) == ["Moon", "TREE"]
