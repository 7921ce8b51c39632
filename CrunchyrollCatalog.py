import datetime
from typing import Optional


def parse_air_date(value: Optional[str]) -> Optional[datetime.datetime]:
    """
    Parse a Crunchyroll timestamp such as ``2019-04-05T15:30:00+09:00`` or
    ``2019-04-05T06:30:00Z`` into an aware datetime (UTC when no offset is given).
    """
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


# A series as returned by the Crunchyroll search. Its seasons are only fetched on demand.
class CrunchyrollSeries(object):
    def __init__(self, seriesId: str, title: str, client=None):
        self.id = seriesId
        self.title = title
        self._client = client

    @classmethod
    def fromPayload(cls, payload: dict, client=None) -> "CrunchyrollSeries":
        return cls(payload["id"], payload.get("title", ""), client)

    def seasons(self) -> list:
        """
        Returns the seasons of the series, in Crunchyroll's order
        :return: A list of CrunchyrollSeason
        """
        return self._client.seasons(self)

    def __repr__(self):
        return f"CrunchyrollSeries({self.id!r}, {self.title!r})"


# One season of a series. Seasons compare equal when their ids do.
class CrunchyrollSeason(object):
    def __init__(self, seasonId: str, title: str, numberOfEpisodes: int, client=None):
        self.id = seasonId
        self.title = title
        self.numberOfEpisodes = numberOfEpisodes
        self._client = client
        self._episodes: Optional[list] = None

    @classmethod
    def fromPayload(cls, payload: dict, client=None) -> "CrunchyrollSeason":
        return cls(
            payload["id"],
            payload.get("title", ""),
            int(payload.get("number_of_episodes") or 0),
            client,
        )

    def episodes(self) -> list:
        """
        Returns the episodes of the season. The list is fetched once and kept,
        the season test and the marking both walk it.
        :return: A list of CrunchyrollEpisode
        """
        if self._episodes is None:
            self._episodes = list(self._client.episodes(self))
        return self._episodes

    def __eq__(self, other):
        return isinstance(other, CrunchyrollSeason) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"CrunchyrollSeason({self.id!r}, {self.title!r}, episodes={self.numberOfEpisodes})"


# `CrunchyrollEpisode` has no number for some specials, previews are sometimes numbered 0
class CrunchyrollEpisode(object):
    def __init__(
        self,
        episodeId: str,
        number: Optional[int],
        airDate: Optional[datetime.datetime],
        title: str = "",
    ):
        self.id = episodeId
        self.number = number
        self.airDate = airDate
        self.title = title

    @classmethod
    def fromPayload(cls, payload: dict) -> "CrunchyrollEpisode":
        number = payload.get("episode_number")
        return cls(
            payload["id"],
            int(number) if number is not None else None,
            parse_air_date(payload.get("episode_air_date")),
            payload.get("title", ""),
        )

    def __repr__(self):
        return f"CrunchyrollEpisode({self.id!r}, number={self.number}, air={self.airDate})"
