import datetime
from typing import Optional


def parse_mal_date(text: str) -> datetime.date:
    """
    Parse a MyAnimeList date of the form ``YYYY-MM-DD``.

    MAL omits the parts it does not know (``"2019"``, ``"2019-04"``); missing or
    zero month and day default to 1.

    :param text: The date as returned by the MAL API
    :type text: str
    :raises ValueError: If a component contains anything but digits
    :return: The parsed date
    """
    parts = text.split("-")
    if len(parts) > 3:
        raise ValueError(f"Invalid character in day: {text}")

    values = []
    for label, part in zip(("year", "month", "day"), parts):
        if not part.isdigit() and part != "":
            raise ValueError(f"Invalid character in {label}: {text}")
        values.append(int(part) if part else 0)
    while len(values) < 3:
        values.append(0)

    year, month, day = values
    return datetime.date(year, max(month, 1), max(day, 1))


# One anime of a MyAnimeList user's list, as read from the list endpoint.
class MalAnimeEntry(object):
    def __init__(
        self,
        title: str,
        watched: int,
        status: str,
        englishTitle: Optional[str] = None,
        startDate: Optional[datetime.date] = None,
        malId: Optional[int] = None,
    ):
        self._title = title
        self._englishTitle = englishTitle
        self._watched = watched
        self._status = status
        self._startDate = startDate
        self._malId = malId

    @classmethod
    def fromListItem(cls, item: dict) -> Optional["MalAnimeEntry"]:
        """
        Build an entry from one element of the ``data`` array of the animelist
        endpoint. Entries without a list status or without any watched episode
        are of no use for marking and yield `None`.

        :param item: A ``{"node": {...}, "list_status": {...}}`` dict
        :return: The entry, or None if it has to be dropped
        """
        node = item.get("node") or {}
        listStatus = item.get("list_status")
        if not listStatus:
            return None
        watched = listStatus.get("num_episodes_watched") or 0
        if watched == 0:
            return None

        alternativeTitles = node.get("alternative_titles") or {}
        startDate = node.get("start_date")
        return cls(
            title=node.get("title", ""),
            watched=int(watched),
            status=listStatus.get("status", ""),
            englishTitle=alternativeTitles.get("en"),
            startDate=parse_mal_date(startDate) if startDate else None,
            malId=node.get("id"),
        )

    @property
    def title(self) -> str:
        return self._title

    @property
    def englishTitle(self) -> Optional[str]:
        return self._englishTitle

    @property
    def watched(self) -> int:
        return self._watched

    @property
    def status(self) -> str:
        return self._status

    @property
    def startDate(self) -> Optional[datetime.date]:
        return self._startDate

    @property
    def malId(self) -> Optional[int]:
        return self._malId

    @property
    def airStartDate(self) -> Optional[datetime.datetime]:
        """Start date as an aware datetime at midnight UTC, comparable to Crunchyroll air dates."""
        if self._startDate is None:
            return None
        return datetime.datetime.combine(
            self._startDate, datetime.time(), tzinfo=datetime.timezone.utc
        )

    def getDisplayTitle(self) -> str:
        """
        The title to look up on Crunchyroll: the English title when MAL has a
        non-empty one, the canonical title otherwise.
        """
        if self._englishTitle:
            return self._englishTitle
        return self._title

    def __repr__(self):
        return f"MalAnimeEntry({self._title!r}, watched={self._watched}, start={self._startDate})"
