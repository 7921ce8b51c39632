#!/usr/bin/env python3
"""
MyAnimeList to Crunchyroll watch progress sync.

Reads the MAL list of a user, finds each anime on Crunchyroll and marks the
episodes the user has watched. Titles that cannot be found are printed on
stdout, one per line; everything else is logged.
"""

import logging
import sys
from csv import writer as csv_writer
from typing import List, Optional, Set

import requests
from tqdm import tqdm

import config
from config import ConfigError
from CrunchyrollCatalog import CrunchyrollSeason
from CrunchyrollIO import CrunchyrollAuthError, CrunchyrollIO, CrunchyrollSession
from MalAnimeList import MalAnimeEntry
from MalIO import MalIO
from TitleMatcher import SeasonMatch, match_season, normalize_title, same_title


def new_sync_results() -> dict:
    return {
        "entries": 0,
        "seasons_matched": 0,
        "season_marks": 0,
        "episode_marks": 0,
        "failed_marks": 0,
        "episode_zero_skipped": 0,
        "entry_errors": 0,
        "unresolved": 0,
    }


def init_unresolved_file(filename: Optional[str]):
    """Start a fresh unresolved report CSV (no-op when the report is disabled)."""
    if not filename:
        return
    with open(filename, "w", newline="", encoding="utf-8") as f:
        csv_writer(f).writerow(["Title", "MAL id"])


def append_unresolved(filename: Optional[str], title: str, mal_id=None):
    """Append an unresolved entry to the CSV (minimal, resilient)."""
    if not filename:
        return
    try:
        with open(filename, "a", newline="", encoding="utf-8") as f:
            csv_writer(f).writerow([title, mal_id if mal_id is not None else ""])
    except OSError as e:
        logging.debug(f"append_unresolved failed: {e}")


def markSeason(season: CrunchyrollSeason, entry: MalAnimeEntry, crunchyroll: CrunchyrollIO, results: dict):
    """
    Mark the watched part of a season.

    A fully watched season is marked with a single call on the season id,
    otherwise each episode up to the watched count is marked on its own.
    Episodes without a number are marked too; episodes numbered 0 are skipped.
    """
    if entry.watched == season.numberOfEpisodes:
        if crunchyroll.mark(season.id):
            results["season_marks"] += 1
        else:
            results["failed_marks"] += 1
        return

    for episode in season.episodes():
        if episode.number is not None:
            if episode.number > entry.watched:
                continue
            if episode.number == 0:
                # MAL does not seem to count previews numbered 0; unconfirmed, so keep it visible
                logging.warning(f"Found an episode 0 for {season.title}, not marking it ({episode.id})")
                results["episode_zero_skipped"] += 1
                continue
        if crunchyroll.mark(episode.id):
            results["episode_marks"] += 1
        else:
            results["failed_marks"] += 1


def processEntry(entry: MalAnimeEntry, crunchyroll: CrunchyrollIO, treated_ids: Set[str], results: dict) -> bool:
    """
    Find the Crunchyroll season of a MAL entry and mark it.

    Only the first search result is considered. Its seasons are walked in order,
    skipping the ones already marked during this run, until one passes the
    season test.

    :return: True if a season was found for the entry
    """
    title = normalize_title(entry.getDisplayTitle())
    logging.info(f"Querying {title}")

    series = next(iter(crunchyroll.search(title)), None)
    if series is None:
        return False
    logging.info(f"Result '{normalize_title(series.title)}' '{title}'")
    if not same_title(series.title, title):
        return False

    for season in series.seasons():
        if season.id in treated_ids:
            continue

        verdict = match_season(season.title, title, entry.airStartDate, season.episodes)
        if verdict is SeasonMatch.ABANDON_SERIES:
            break
        if verdict is SeasonMatch.REJECT:
            continue

        logging.info(f"Found {season.title}")
        markSeason(season, entry, crunchyroll, results)
        treated_ids.add(season.id)
        results["seasons_matched"] += 1
        return True

    return False


def syncEntries(entries: List[MalAnimeEntry], crunchyroll: CrunchyrollIO, unresolved_filename: Optional[str] = None) -> dict:
    """
    Process the MAL entries in order and return the run counters.

    Entries are expected oldest first, so that a first season claims its
    Crunchyroll season before the entry of a sequel is looked up.
    """
    results = new_sync_results()
    treated_ids: Set[str] = set()

    for entry in tqdm(entries, desc="Marking MAL entries on Crunchyroll"):
        results["entries"] += 1
        try:
            found = processEntry(entry, crunchyroll, treated_ids, results)
        except requests.exceptions.RequestException as e:
            logging.error(f"Skipping '{entry.getDisplayTitle()}' after a Crunchyroll error: {e}")
            results["entry_errors"] += 1
            continue

        if not found:
            title = normalize_title(entry.getDisplayTitle())
            print(title)
            results["unresolved"] += 1
            append_unresolved(unresolved_filename, title, entry.malId)

    log_summary(results)
    return results


def log_summary(results: dict):
    logging.info("=== SYNC SUMMARY ===")
    logging.info(f"MAL entries processed: {results['entries']}")
    logging.info(f"Crunchyroll seasons matched: {results['seasons_matched']}")
    logging.info(f"Seasons marked at once: {results['season_marks']}")
    logging.info(f"Episodes marked one by one: {results['episode_marks']}")
    logging.info(f"Episodes numbered 0 skipped: {results['episode_zero_skipped']}")
    logging.info(f"Unresolved entries: {results['unresolved']}")
    if results["failed_marks"]:
        logging.error(f"FAILED marks (API errors): {results['failed_marks']}")
    if results["entry_errors"]:
        logging.error(f"Entries skipped after Crunchyroll errors: {results['entry_errors']}")


def main() -> int:
    """Entry point: checks the config, logs in, reads MAL and syncs Crunchyroll"""
    logging.basicConfig(
        filename=config.LOG_FILENAME,
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config.check_required()
    except ConfigError as e:
        logging.critical(str(e))
        return 1

    if config.DRY_RUN:
        logging.info("Dry run enabled. Nothing will be marked on Crunchyroll.")

    session = CrunchyrollSession()
    try:
        session.login()
        crunchyroll = CrunchyrollIO(session)
    except (CrunchyrollAuthError, requests.exceptions.RequestException) as e:
        logging.critical(f"Crunchyroll authentication failed: {e}")
        return 1

    mal = MalIO()
    try:
        entries = mal.fetchList()
    finally:
        mal.close()

    unresolved_filename = config.UNRESOLVED_FILENAME
    try:
        init_unresolved_file(unresolved_filename)
    except OSError as e:
        logging.warning(f"Cannot write {unresolved_filename}, unresolved titles only go to stdout: {e}")
        unresolved_filename = None

    try:
        syncEntries(entries, crunchyroll, unresolved_filename)
    except CrunchyrollAuthError as e:
        logging.critical(f"Crunchyroll authentication lost: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
