"""
MyAnimeList reader: pages through a user's public anime list.
"""

from typing import List

import logging
import time

import requests

import config
from MalAnimeList import MalAnimeEntry


class MalIO(object):
    """
    Reads the anime list of a MyAnimeList user with the public v2 API.

    Features:
    - Client-id authentication (``X-MAL-CLIENT-ID``), no user login
    - Offset pagination with a fixed page size
    - Delay between pages to stay under MAL's request cap
    - Best-effort: a failing page ends pagination, the entries read so far are kept
    """

    LIST_FIELDS = "list_status,alternative_titles,start_date"

    def __init__(self, username=None, client_id=None, page_size=None, delay=None, session=None):
        self.username = username if username is not None else config.MAL_USERNAME
        self.client_id = client_id if client_id is not None else config.MAL_CLIENT_ID
        self.page_size = page_size if page_size is not None else config.MAL_PAGE_SIZE
        self.delay = delay if delay is not None else config.MAL_API_DELAY
        self.timeout = config.HTTP_TIMEOUT
        self.session = session if session is not None else requests.Session()

    def _fetchPage(self, offset: int) -> list:
        """Fetch one page of the list and return its raw ``data`` items."""
        url = f"{config.MAL_API_URL}/users/{self.username}/animelist"
        params = {
            "fields": self.LIST_FIELDS,
            "sort": "anime_start_date",
            "limit": self.page_size,
            "offset": offset,
            "nsfw": "true",
        }
        response = self.session.get(
            url,
            params=params,
            headers={"X-MAL-CLIENT-ID": self.client_id},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("data", [])

    def fetchList(self) -> List[MalAnimeEntry]:
        """
        Read the whole list, dropping entries that have no list status or no
        watched episode.

        The accumulated list is returned reversed so that older seasons come
        first: the driver relies on them claiming their Crunchyroll season
        before a sequel gets matched.

        :return: The usable entries, oldest first
        """
        entries: List[MalAnimeEntry] = []
        offset = 0
        page_num = 1
        done = False

        logging.info(f"Fetching anime list for user '{self.username}' from MyAnimeList...")
        while not done:
            if page_num > 1:
                time.sleep(self.delay)
            logging.info(f"Reading MAL page {page_num} (offset {offset})")
            try:
                items = self._fetchPage(offset)
            except requests.exceptions.HTTPError as e:
                status_code = getattr(e.response, "status_code", None)
                if status_code == 403:
                    logging.error(
                        f"Error while retrieving the list: 403 Forbidden for '{self.username}'. "
                        "The list has to be public."
                    )
                elif status_code == 404:
                    logging.error(f"Error while retrieving the list: user '{self.username}' not found")
                else:
                    logging.error(f"Error while retrieving the list: {e}")
                break
            except requests.exceptions.RequestException as e:
                logging.error(f"Error while retrieving the list: {e}")
                break

            done = len(items) != self.page_size
            kept = 0
            for item in items:
                entry = MalAnimeEntry.fromListItem(item)
                if entry is None:
                    node = item.get("node") or {}
                    logging.debug(f"Skipping '{node.get('title')}': no status or nothing watched")
                    continue
                entries.append(entry)
                kept += 1
            logging.debug(f"MAL page {page_num}: {len(items)} items, {kept} kept")

            offset += self.page_size
            page_num += 1

        logging.info(f"{len(entries)} elements read")

        entries.reverse()
        return entries

    def close(self):
        self.session.close()
