import pytest

from sketchturn.game.scoring import ScoringPolicy, close_threshold, edit_distance, is_close_guess, normalize_guess


def test_awards_scale_with_time_left():
    policy = ScoringPolicy()
    assert policy.guesser_award(60_000, 60_000) == 100
    assert policy.guesser_award(30_000, 60_000) == 55
    assert policy.guesser_award(0, 60_000) == 10
    assert policy.drawer_award(60_000, 60_000) == 25
    assert policy.drawer_award(59_000, 60_000) == 24


def test_awards_clamp_out_of_range_time():
    policy = ScoringPolicy()
    assert policy.guesser_award(-5_000, 60_000) == 10
    assert policy.guesser_award(120_000, 60_000) == 100
    assert policy.guesser_award(10_000, 0) == 10


def test_awards_never_negative():
    policy = ScoringPolicy(base_guess_points=-50, guess_time_bonus=10, base_drawer_points=-1, drawer_time_bonus=0)
    assert policy.guesser_award(60_000, 60_000) == 0
    assert policy.drawer_award(60_000, 60_000) == 0


def test_normalize_guess():
    assert normalize_guess("  Hot   Air\tBalloon ") == "hot air balloon"
    assert normalize_guess("") == ""


@pytest.mark.parametrize(
    "a,b,expected",
    [
        ("", "", 0),
        ("cat", "cat", 0),
        ("cat", "car", 1),
        ("kitten", "sitting", 3),
        ("", "abc", 3),
    ],
)
def test_edit_distance(a, b, expected):
    assert edit_distance(a, b) == expected


def test_close_threshold_grows_with_length():
    assert close_threshold("cat") == 1
    assert close_threshold("elephant") == 1
    assert close_threshold("lighthouse") == 2
    assert close_threshold("hot air balloon") == 3


def test_close_guesses():
    assert is_close_guess("car", "CAT")
    assert is_close_guess("lighthuose", "LIGHTHOUSE")
    assert not is_close_guess("cat", "CAT")
    assert not is_close_guess("dog", "CAT")
    assert not is_close_guess("", "CAT")
