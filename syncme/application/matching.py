import logging
from typing import List, Optional, Tuple

from syncme.domain.entities import ConfidenceTier, LocalTrack, MatchCandidate, RemoteTrack
from syncme.domain.errors import RemoteUnavailable
from syncme.domain.normalization import contains, describe, either_contains, query_value, strings_equal
from syncme.domain.ports import CatalogClient


logger = logging.getLogger(__name__)

EXACT_FIELD = "exact_field"
QUOTED_FREE_TEXT = "quoted_free_text"
FREE_TEXT = "free_text"
TITLE_ONLY = "title_only"

# Fixed priority order of the search cascade
CASCADE = (EXACT_FIELD, QUOTED_FREE_TEXT, FREE_TEXT, TITLE_ONLY)

DEFAULT_SEARCH_LIMIT = 10


def build_queries(track: LocalTrack) -> List[Tuple[str, str]]:
    """Build the cascade queries for a local track, in priority order.

    Queries that need an artist are left out when the track has none; a track
    without a title produces no queries at all.
    """
    title = query_value(track.title)
    artist = query_value(track.artist)
    if not title:
        return []

    queries = []
    if artist:
        queries.append((EXACT_FIELD, f'track:"{title}" artist:"{artist}"'))
        queries.append((QUOTED_FREE_TEXT, f'"{title}" "{artist}"'))
        queries.append((FREE_TEXT, f"{title} {artist}"))
    queries.append((TITLE_ONLY, f'track:"{title}"'))
    return queries


def select_candidate(track: LocalTrack,
                     results: List[RemoteTrack]) -> Optional[Tuple[RemoteTrack, ConfidenceTier]]:
    """Pick the best result of one query and grade it.

    Results are scanned in server relevance order. The first exact title and
    artist match is HIGH; otherwise the first result with one exact and one
    partial field is MEDIUM; otherwise the top result is LOW. A partial artist
    match is containment either way; a partial title match requires the remote
    name to occur within the local title.
    """
    if not results:
        return None

    for result in results:
        if strings_equal(track.title, result.name) and strings_equal(track.artist, result.artist):
            return result, ConfidenceTier.HIGH

    for result in results:
        title_match = strings_equal(track.title, result.name)
        artist_match = strings_equal(track.artist, result.artist)
        # Only the remote name may be the shorter string
        partial_title = contains(track.title, result.name)
        partial_artist = either_contains(track.artist, result.artist)
        if (title_match and partial_artist) or (partial_title and artist_match):
            return result, ConfidenceTier.MEDIUM

    return results[0], ConfidenceTier.LOW


class TrackMatcher:
    """Resolves a local track to at most one remote candidate.

    Queries are tried in cascade order (exact field, quoted free text, unquoted
    free text, title only) and the first query with any result decides the
    match. A query whose search call fails is treated as empty.
    """

    def __init__(self, catalog: CatalogClient, search_limit: int = DEFAULT_SEARCH_LIMIT):
        """Initialize the matcher.

        Args:
            catalog: Remote catalog used for searching
            search_limit: Maximum number of results requested per query
        """
        self.catalog = catalog
        self.search_limit = search_limit

    def match(self, track: LocalTrack) -> Optional[MatchCandidate]:
        """Find the best remote candidate for a local track.

        Args:
            track: Local track to resolve

        Returns:
            MatchCandidate, or None when every query came back empty

        Raises:
            Unauthenticated: If the credential is missing or rejected
        """
        for strategy, query in build_queries(track):
            results = self._search(strategy, query)
            if not results:
                continue

            remote, tier = select_candidate(track, results)
            logger.debug(f"Matched {describe(track)} via {strategy}: "
                         f"{remote.id} '{remote.name}' by '{remote.artist}' ({tier.value})")
            return MatchCandidate(track=remote, confidence_tier=tier, strategy=strategy)

        logger.info(f"No candidate found for {describe(track)}")
        return None

    def search_candidates(self, track: LocalTrack) -> List[RemoteTrack]:
        """Run every cascade query and merge the results for manual selection.

        Results are de-duplicated by id, keeping the first occurrence, and
        sorted by popularity, most popular first.
        """
        seen = set()
        merged: List[RemoteTrack] = []
        for strategy, query in build_queries(track):
            for remote in self._search(strategy, query):
                if remote.id in seen:
                    continue
                seen.add(remote.id)
                merged.append(remote)

        return sorted(merged, key=lambda r: r.popularity, reverse=True)

    def _search(self, strategy: str, query: str) -> List[RemoteTrack]:
        try:
            return list(self.catalog.search_tracks(query, self.search_limit))
        except RemoteUnavailable as e:
            logger.warning(f"Search '{strategy}' failed, trying next query: {e}")
            return []
