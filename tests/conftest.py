import datetime

import pytest
import requests

from CrunchyrollCatalog import CrunchyrollEpisode, CrunchyrollSeason, CrunchyrollSeries
from MalAnimeList import MalAnimeEntry


def utc(year, month, day):
    return datetime.datetime(year, month, day, tzinfo=datetime.timezone.utc)


def make_entry(title, watched, start=None, english=None, mal_id=None):
    return MalAnimeEntry(
        title=title,
        watched=watched,
        status="completed",
        englishTitle=english,
        startDate=start,
        malId=mal_id,
    )


class FakeResponse(object):
    def __init__(self, status_code=200, payload=None, url="https://fake.test/", text=""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.url = url
        self.text = text

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error for {self.url}", response=self)


class FakeCrunchyroll(object):
    """
    In-memory stand-in for `CrunchyrollIO`.

    `catalog` maps a search query to the series it returns; series, seasons and
    episodes are registered with `add_series`.
    """

    def __init__(self):
        self.catalog = {}
        self._seasons = {}
        self._episodes = {}
        self.marks = []
        self.failing_ids = set()
        self.search_errors = set()
        self.searches = []
        self.episode_calls = []

    def add_series(self, queries, series_id, title, seasons):
        """
        :param seasons: list of (season_id, title, number_of_episodes, [episodes])
        """
        series = CrunchyrollSeries(series_id, title, self)
        for query in queries:
            self.catalog.setdefault(query, []).append(series)
        self._seasons[series_id] = []
        for season_id, season_title, count, episodes in seasons:
            self._seasons[series_id].append((season_id, season_title, count))
            self._episodes[season_id] = episodes
        return series

    def search(self, query):
        self.searches.append(query)
        if query in self.search_errors:
            raise requests.exceptions.ConnectionError(f"search failed for {query}")
        for series in self.catalog.get(query, []):
            yield series

    def seasons(self, series):
        return [
            CrunchyrollSeason(season_id, title, count, self)
            for season_id, title, count in self._seasons[series.id]
        ]

    def episodes(self, season):
        self.episode_calls.append(season.id)
        return list(self._episodes[season.id])

    def mark(self, content_id):
        self.marks.append(content_id)
        return content_id not in self.failing_ids


def weekly_episodes(prefix, first_air, count, first_number=1):
    """Episodes numbered from `first_number`, one per week starting at `first_air`."""
    return [
        CrunchyrollEpisode(
            f"{prefix}-e{first_number + i}",
            first_number + i,
            first_air + datetime.timedelta(weeks=i),
        )
        for i in range(count)
    ]


@pytest.fixture
def crunchyroll():
    return FakeCrunchyroll()
