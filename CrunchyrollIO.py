"""
Crunchyroll access: session/token handling and the catalog + progress calls
used to mark episodes as watched.
"""

from typing import Iterator, List, Optional

import logging
import time
import uuid

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt

import config
from CrunchyrollCatalog import CrunchyrollEpisode, CrunchyrollSeason, CrunchyrollSeries


class CrunchyrollAuthError(Exception):
    """Login or token refresh was refused by Crunchyroll."""


class CrunchyrollPayloadError(requests.exceptions.RequestException):
    """A Crunchyroll answer could not be read into catalog objects."""


class TokenExpiredError(Exception):
    """A Crunchyroll call answered 401 with the current bearer token."""

    def __init__(self, response: requests.Response):
        super().__init__(f"401 Unauthorized for {response.url}")
        self.response = response


class CrunchyrollSession(object):
    """
    Login state of a Crunchyroll account.

    Holds the HTTP session plus the refresh token, and hands out fresh access
    tokens on demand. `CrunchyrollIO` keeps a reference to it and asks for a new
    token whenever a call is rejected with 401.
    """

    def __init__(self, email=None, password=None, http=None, client_id=None, client_secret=None):
        self.email = email if email is not None else config.EMAIL
        self.password = password if password is not None else config.PASSWORD
        self.client_id = client_id if client_id is not None else config.CRUNCHYROLL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.CRUNCHYROLL_CLIENT_SECRET
        self.http = http if http is not None else requests.Session()
        self.http.headers["User-Agent"] = "mal2crunchyroll"
        self.timeout = config.HTTP_TIMEOUT
        self.device_id = str(uuid.uuid4())

        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._account_id: Optional[str] = None

    def _requestToken(self, data: dict) -> dict:
        url = f"{config.CRUNCHYROLL_API_URL}/auth/v1/token"
        payload = {
            "scope": "offline_access",
            "device_id": self.device_id,
            "device_type": "mal2crunchyroll",
            **data,
        }
        try:
            response = self.http.post(
                url,
                data=payload,
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise CrunchyrollAuthError(f"Could not reach Crunchyroll: {e}") from e

        if response.status_code >= 400:
            raise CrunchyrollAuthError(
                f"Crunchyroll refused the token request ({response.status_code}): {response.text[:200]}"
            )

        tokens = response.json()
        self._access_token = tokens["access_token"]
        self._refresh_token = tokens.get("refresh_token") or self._refresh_token
        if tokens.get("account_id"):
            self._account_id = tokens["account_id"]
        return tokens

    def login(self):
        """Log in with the account credentials. Raises `CrunchyrollAuthError` on failure."""
        if not self.email or not self.password:
            raise CrunchyrollAuthError("Crunchyroll email and password are required")
        logging.info("Logging in to Crunchyroll...")
        self._requestToken(
            {"grant_type": "password", "username": self.email, "password": self.password}
        )
        logging.info("Crunchyroll login successful")

    def access_token(self) -> str:
        """
        Return a freshly issued access token. Uses the refresh token when one is
        held and logs in again otherwise.
        """
        if self._refresh_token:
            try:
                self._requestToken({"grant_type": "refresh_token", "refresh_token": self._refresh_token})
                logging.debug("Crunchyroll access token refreshed")
                return self._access_token
            except CrunchyrollAuthError as e:
                logging.warning(f"Token refresh failed, logging in again: {e}")
        self.login()
        return self._access_token

    def account_id(self) -> str:
        """Account uuid of the logged in user."""
        if self._account_id:
            return self._account_id
        if self._access_token is None:
            self.login()
            if self._account_id:
                return self._account_id

        response = self.http.get(
            f"{config.CRUNCHYROLL_API_URL}/accounts/v1/me",
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            raise CrunchyrollAuthError(f"Could not read the Crunchyroll account ({response.status_code})")
        self._account_id = response.json()["account_id"]
        return self._account_id


def _refresh_before_retry(retry_state):
    """tenacity hook: the call got a 401, get a new bearer token before the retry."""
    crunchyroll = retry_state.args[0]
    logging.warning(
        f"Crunchyroll answered 401 ({retry_state.outcome.exception()}), refreshing the token and retrying once"
    )
    crunchyroll.updateToken()


class CrunchyrollIO(object):
    """
    Catalog lookups and watch progress updates on Crunchyroll.

    Features:
    - Lazy, paged series search in Crunchyroll's relevance order
    - Season and episode listings
    - ``mark_as_watched`` for a season or an episode id
    - One token refresh + one retry when a call is answered with 401
    - Optional minimum delay between calls
    - Dry run mode for testing
    """

    SEARCH_PAGE_SIZE = 10

    def __init__(self, session: CrunchyrollSession, preferred_audio=None, locale=None, dry_run=None, delay=None):
        self.session = session
        self.preferred_audio = preferred_audio if preferred_audio is not None else config.PREFERRED_AUDIO
        self.locale = locale if locale is not None else config.CLOCALE
        self.dry_run = dry_run if dry_run is not None else config.DRY_RUN
        self.min_delay = delay if delay is not None else config.CRUNCHYROLL_API_DELAY
        self.timeout = config.HTTP_TIMEOUT

        self._last_api_call_time = 0.0

        self.account_uuid = self.session.account_id()
        self.bearer_token = ""
        self.updateToken()

    def updateToken(self):
        """Replace the bearer token with a new one from the session."""
        self.bearer_token = self.session.access_token()

    def _enforce_rate_limit(self):
        """Keep at least `min_delay` seconds between two Crunchyroll calls."""
        if self.min_delay <= 0:
            return
        time_since_last_call = time.time() - self._last_api_call_time
        if time_since_last_call < self.min_delay:
            sleep_time = self.min_delay - time_since_last_call
            logging.debug(f"Rate limiting: sleeping for {sleep_time:.2f}s")
            time.sleep(sleep_time)
        self._last_api_call_time = time.time()

    @retry(
        retry=retry_if_exception_type(TokenExpiredError),
        stop=stop_after_attempt(2),
        before_sleep=_refresh_before_retry,
        reraise=True,
    )
    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Send an authenticated request. A 401 raises `TokenExpiredError`, which the
        retry policy answers with exactly one token refresh and one new attempt.
        """
        self._enforce_rate_limit()
        response = self.session.http.request(
            method,
            url,
            headers={"Authorization": f"Bearer {self.bearer_token}"},
            timeout=self.timeout,
            **kwargs,
        )
        if response.status_code == 401:
            raise TokenExpiredError(response)
        return response

    def _get(self, path: str, params: dict) -> dict:
        try:
            response = self._request("GET", f"{config.CRUNCHYROLL_API_URL}{path}", params=params)
        except TokenExpiredError as e:
            e.response.raise_for_status()
            raise
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _parsePayload(items: list, parser, what: str) -> list:
        """Build catalog objects, a malformed item raises `CrunchyrollPayloadError`."""
        try:
            return [parser(item) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            raise CrunchyrollPayloadError(f"Malformed Crunchyroll {what} payload: {e!r}") from e

    def _localeParams(self) -> dict:
        return {"preferred_audio_language": self.preferred_audio, "locale": self.locale}

    def search(self, query: str) -> Iterator[CrunchyrollSeries]:
        """
        Search series by title. Results are yielded in Crunchyroll's relevance
        order; further pages are only requested if the caller keeps iterating.
        """
        start = 0
        while True:
            params = {
                "q": query,
                "n": self.SEARCH_PAGE_SIZE,
                "start": start,
                "type": "series",
                **self._localeParams(),
            }
            payload = self._get("/content/v2/discover/search", params)

            items = []
            for bucket in payload.get("data", []):
                if bucket.get("type") == "series":
                    items = bucket.get("items", [])
                    break
            yield from self._parsePayload(items, lambda item: CrunchyrollSeries.fromPayload(item, self), "search")

            if len(items) < self.SEARCH_PAGE_SIZE:
                return
            start += len(items)

    def seasons(self, series: CrunchyrollSeries) -> List[CrunchyrollSeason]:
        """List the seasons of a series in Crunchyroll's order."""
        payload = self._get(f"/content/v2/cms/series/{series.id}/seasons", self._localeParams())
        return self._parsePayload(
            payload.get("data", []), lambda item: CrunchyrollSeason.fromPayload(item, self), f"seasons of {series.id}"
        )

    def episodes(self, season: CrunchyrollSeason) -> List[CrunchyrollEpisode]:
        """List the episodes of a season in Crunchyroll's order."""
        payload = self._get(f"/content/v2/cms/seasons/{season.id}/episodes", self._localeParams())
        return self._parsePayload(payload.get("data", []), CrunchyrollEpisode.fromPayload, f"episodes of {season.id}")

    def mark(self, content_id: str) -> bool:
        """
        Mark a season or an episode as watched.

        :param content_id: Crunchyroll id of a season or an episode
        :return: True if Crunchyroll accepted the update
        """
        if self.dry_run:
            logging.info(f"Dry run: would mark {content_id} as watched")
            return True

        url = (
            f"{config.CRUNCHYROLL_API_URL}/content/v2/discover/{self.account_uuid}"
            f"/mark_as_watched/{content_id}"
        )
        try:
            response = self._request("POST", url, params=self._localeParams())
        except TokenExpiredError as e:
            logging.error(f"Could not mark {content_id}: still unauthorized after token refresh ({e})")
            return False
        except requests.exceptions.RequestException as e:
            logging.error(f"Could not mark {content_id}: {e}")
            return False

        if not 200 <= response.status_code < 300:
            logging.error(
                f"Could not mark {content_id}: HTTP {response.status_code} {response.text[:200]}"
            )
            return False

        logging.debug(f"Marked {content_id} as watched")
        return True
