"""
Title and season matching between MyAnimeList entries and the Crunchyroll catalog.
"""

from enum import Enum
from typing import Callable, Iterable, Optional, Union

import datetime
import logging

from rapidfuzz.distance import Levenshtein

# Largest accepted edit distance, relative to the Crunchyroll title length.
# For a 20 letter title this allows 2 edits.
MAX_TITLE_DISTANCE = 0.125
# Distances from here on are accepted but reported, to help tuning the threshold
TITLE_WARNING_DISTANCE = 0.01
# Crunchyroll lists some episodes ahead of the Japanese airing
MAX_AIR_DATE_DIFFERENCE = datetime.timedelta(days=60)


class SeasonMatch(Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    # Crunchyroll seasons are chronological: every later season is even further away
    ABANDON_SERIES = "abandon_series"


def normalize_title(title: Optional[str]) -> str:
    return (title or "").strip().lower()


def title_distance(candidate: str, query: str) -> Optional[float]:
    """
    Edit distance between `candidate` and the prefix of `query` of the same
    length, divided by the candidate length. None when the candidate cannot be a
    prefix of the query (empty, or longer than the query).
    """
    n = len(candidate)
    if n == 0 or len(query) < n:
        return None
    return Levenshtein.distance(candidate, query[:n]) / n


def same_title(candidate: str, query: str) -> bool:
    """
    Whether a Crunchyroll series title is a near-prefix of a MAL title.

    MAL titles often carry a season suffix (``" 2nd season"``) that the
    Crunchyroll series name does not, and both services spell some titles
    slightly differently ("hitoribocchi no marumaru seikatsu" vs.
    "hitoribocchi no marumaruseikatsu"), hence the prefix scope and the
    tolerance.

    :param candidate: Title of the Crunchyroll series
    :param query: Title of the MAL entry
    :return: True if the series is accepted for the entry
    """
    candidate = normalize_title(candidate)
    query = normalize_title(query)

    score = title_distance(candidate, query)
    if score is None:
        logging.debug(f"Rejected '{candidate}' for '{query}': not a prefix candidate")
        return False

    if score > MAX_TITLE_DISTANCE:
        logging.debug(f"Rejected '{candidate}' for '{query}' (distance {score:.3f})")
        return False
    if score >= TITLE_WARNING_DISTANCE:
        logging.warning(f"Fuzzy title match: '{query}' => '{candidate}' (distance {score:.3f})")
    return True


def match_season(
    season_title: str,
    query: str,
    air_start_date: Optional[datetime.datetime],
    episodes: Union[Iterable, Callable[[], Iterable]],
) -> SeasonMatch:
    """
    Decide whether a Crunchyroll season is the one a MAL entry refers to.

    A season whose title is the MAL title is taken as is. Otherwise its episodes
    are walked in order and compared with the MAL air start date: one episode
    aired within `MAX_AIR_DATE_DIFFERENCE` of it accepts the season, one aired
    after that window means no season of the series can match.

    :param season_title: Title of the Crunchyroll season
    :param query: Normalized MAL title
    :param air_start_date: MAL air start date, None if MAL has none
    :param episodes: Episodes of the season (anything with an ``airDate``), or a
        callable returning them; only called when the dates are needed
    """
    if normalize_title(season_title) == query:
        return SeasonMatch.ACCEPT

    if air_start_date is None:
        logging.warning(f"No date has been found for '{query}', cannot check '{season_title}'")
        return SeasonMatch.REJECT

    if callable(episodes):
        episodes = episodes()

    latest = air_start_date + MAX_AIR_DATE_DIFFERENCE
    for episode in episodes:
        if episode.airDate is None:
            continue
        if abs(episode.airDate - air_start_date) <= MAX_AIR_DATE_DIFFERENCE:
            return SeasonMatch.ACCEPT
        if episode.airDate > latest:
            logging.debug(
                f"'{season_title}' airs after {latest.date()}, no later season can match '{query}'"
            )
            return SeasonMatch.ABANDON_SERIES

    return SeasonMatch.REJECT
