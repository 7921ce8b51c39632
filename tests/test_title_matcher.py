import datetime

import pytest

from CrunchyrollCatalog import CrunchyrollEpisode
from TitleMatcher import (
    SeasonMatch,
    match_season,
    normalize_title,
    same_title,
    title_distance,
)
from conftest import utc, weekly_episodes


def test_spacing_difference_is_accepted():
    assert same_title("Hitoribocchi no Marumaruseikatsu", "hitoribocchi no marumaru seikatsu")


def test_season_suffix_on_mal_side_is_accepted():
    assert same_title("Kaguya-sama: Love is War", "kaguya-sama: love is war 2nd season")


def test_candidate_longer_than_query_is_rejected():
    assert not same_title("foobar", "foo")


def test_empty_candidate_is_rejected():
    assert not same_title("", "anything")
    assert not same_title("   ", "anything")


def test_unrelated_titles_are_rejected():
    assert not same_title("naruto", "one piece film red")


@pytest.mark.parametrize(
    "candidate, query",
    [
        ("Mob Psycho 100", "mob psycho 100 ii"),
        ("MOB PSYCHO 100  ", "Mob Psycho 100 II"),
        ("mob psycho 100\t", "  MOB psycho 100 ii  "),
    ],
)
def test_acceptance_ignores_case_and_surrounding_whitespace(candidate, query):
    assert same_title(candidate, query)
    assert same_title(candidate.upper(), query.lower())


def test_distance_threshold_is_inclusive():
    # 1 edit over 8 letters is exactly the tolerated 12.5%
    assert title_distance("abcdefgh", "abcdefgx and more") == 0.125
    assert same_title("abcdefgh", "abcdefgx and more")
    # 1 edit over 7 letters is above it
    assert not same_title("abcdefg", "abcdefx and more")


def test_title_distance_none_when_not_a_prefix_candidate():
    assert title_distance("", "abc") is None
    assert title_distance("abcd", "abc") is None
    assert title_distance("abc", "abc") == 0.0


def test_small_distance_emits_warning(caplog):
    with caplog.at_level("WARNING"):
        assert same_title("hitoribocchi no marumaruseikatsu", "hitoribocchi no marumaru seikatsu")
    assert "Fuzzy title match" in caplog.text


def test_exact_prefix_is_silent(caplog):
    with caplog.at_level("WARNING"):
        assert same_title("one piece", "one piece")
    assert caplog.text == ""


def test_normalize_title():
    assert normalize_title("  Spy x Family ") == "spy x family"
    assert normalize_title(None) == ""


def test_season_with_query_title_is_accepted_without_dates():
    def fail():
        raise AssertionError("episodes must not be fetched")

    verdict = match_season("Spy x Family Part 2", "spy x family part 2", None, fail)
    assert verdict is SeasonMatch.ACCEPT


def test_season_airing_near_the_start_date_is_accepted():
    episodes = weekly_episodes("s1", utc(2019, 4, 10), 12)
    verdict = match_season("Some Season", "some title", utc(2019, 4, 5), episodes)
    assert verdict is SeasonMatch.ACCEPT


def test_episode_listed_ahead_of_airing_is_accepted():
    episodes = weekly_episodes("s1", utc(2019, 2, 15), 3)
    verdict = match_season("Some Season", "some title", utc(2019, 4, 5), episodes)
    assert verdict is SeasonMatch.ACCEPT


def test_window_bound_is_inclusive():
    start = utc(2020, 1, 1)
    episodes = [CrunchyrollEpisode("e1", 1, start + datetime.timedelta(days=60))]
    assert match_season("x", "y", start, episodes) is SeasonMatch.ACCEPT


def test_earlier_season_is_rejected():
    episodes = weekly_episodes("s1", utc(2015, 1, 1), 12)
    verdict = match_season("Season 1", "title season 3", utc(2019, 4, 5), episodes)
    assert verdict is SeasonMatch.REJECT


def test_later_season_abandons_the_series():
    episodes = weekly_episodes("s3", utc(2022, 1, 1), 12)
    verdict = match_season("Season 3", "title", utc(2019, 4, 5), episodes)
    assert verdict is SeasonMatch.ABANDON_SERIES


def test_walk_stops_at_first_late_episode():
    # Early specials first, then an episode far after the start date
    episodes = [
        CrunchyrollEpisode("e1", 1, utc(2010, 1, 1)),
        CrunchyrollEpisode("e2", 2, utc(2021, 1, 1)),
        CrunchyrollEpisode("e3", 3, utc(2019, 4, 6)),
    ]
    verdict = match_season("Season", "title", utc(2019, 4, 5), episodes)
    assert verdict is SeasonMatch.ABANDON_SERIES


def test_missing_start_date_rejects_with_warning(caplog):
    episodes = weekly_episodes("s1", utc(2019, 4, 10), 12)
    with caplog.at_level("WARNING"):
        verdict = match_season("Other Title", "title", None, episodes)
    assert verdict is SeasonMatch.REJECT
    assert "No date has been found" in caplog.text


def test_episodes_without_air_date_are_ignored():
    episodes = [CrunchyrollEpisode("e1", 1, None)]
    assert match_season("x", "y", utc(2019, 4, 5), episodes) is SeasonMatch.REJECT


def test_episodes_callable_is_only_called_when_needed():
    calls = []

    def episodes():
        calls.append(1)
        return weekly_episodes("s1", utc(2019, 4, 10), 2)

    assert match_season("x", "y", utc(2019, 4, 5), episodes) is SeasonMatch.ACCEPT
    assert calls == [1]
