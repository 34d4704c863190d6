import logging
from typing import Iterable, List, Optional, Sequence

from syncme.application.differ import PlaylistDiffer
from syncme.application.matching import DEFAULT_SEARCH_LIMIT, TrackMatcher
from syncme.application.mutation import REMOTE_BATCH_LIMIT, BatchMutator
from syncme.crosscutting.logging import CorrelationContext, log_with_fields
from syncme.domain.entities import (
    ApplyResult, LocalTrack, Playlist, ReconciliationResult, RemoteTrack
)
from syncme.domain.errors import ApplyFailed, InvalidInput, MutationFailed
from syncme.domain.ports import CatalogClient


logger = logging.getLogger(__name__)

DEFAULT_PLAYLIST_DESCRIPTION = "Created by SyncMe"


def _unique(uris: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for uri in uris:
        if uri and uri not in seen:
            seen.add(uri)
            unique.append(uri)
    return unique


def _require_playlist_id(playlist_id) -> None:
    if not isinstance(playlist_id, str) or not playlist_id.strip():
        raise InvalidInput("playlist id is required")


def _require_tracks(local_tracks) -> None:
    if not isinstance(local_tracks, (list, tuple)):
        raise InvalidInput("songs must be a list of local tracks")
    for track in local_tracks:
        if not isinstance(track, LocalTrack):
            raise InvalidInput(f"not a local track: {track!r}")


class ReconciliationOrchestrator:
    """Entry point of the reconciliation engine.

    `synchronize` computes a diff without touching the playlist; `apply`
    commits one. Callers should synchronize immediately before applying,
    since apply does not re-read the playlist.
    """

    def __init__(self,
                 catalog: CatalogClient,
                 matcher: Optional[TrackMatcher] = None,
                 differ: Optional[PlaylistDiffer] = None,
                 mutator: Optional[BatchMutator] = None,
                 search_limit: int = DEFAULT_SEARCH_LIMIT,
                 batch_size: int = REMOTE_BATCH_LIMIT,
                 max_workers: int = 1):
        """Initialize the orchestrator.

        Args:
            catalog: Remote catalog client
            matcher: Track matcher; built from catalog if omitted
            differ: Playlist differ; built from catalog and matcher if omitted
            mutator: Batch mutator; built from catalog if omitted
            search_limit: Results per search query for a default matcher
            batch_size: URIs per mutation call for a default mutator
            max_workers: Matching threads for a default differ
        """
        self.catalog = catalog
        self.matcher = matcher or TrackMatcher(catalog, search_limit=search_limit)
        self.differ = differ or PlaylistDiffer(catalog, self.matcher, max_workers=max_workers)
        self.mutator = mutator or BatchMutator(catalog, batch_size=batch_size)

    def synchronize(self, local_tracks: Sequence[LocalTrack], playlist_id: str) -> ReconciliationResult:
        """Diff a local collection against the current state of a playlist.

        Raises:
            InvalidInput: If arguments are malformed; no remote call is made
            Unauthenticated: If the credential is missing or rejected
            RemoteUnavailable: If the playlist snapshot cannot be read
        """
        _require_playlist_id(playlist_id)
        _require_tracks(local_tracks)

        logger.info(f"Synchronizing {len(local_tracks)} local tracks against playlist {playlist_id}")
        return self.differ.diff(local_tracks, playlist_id)

    def apply(self, result: ReconciliationResult,
              remove_uris: Optional[Sequence[str]] = None) -> ApplyResult:
        """Commit a reconciliation result to its playlist.

        Adds every `to_add` track, then removes `remove_uris`. Duplicate URIs
        are sent once.

        Returns:
            ApplyResult with the counts added and removed

        Raises:
            InvalidInput: If the result has no playlist id
            ApplyFailed: If a mutation fails; `result` holds the counts applied so far
        """
        if not isinstance(result, ReconciliationResult):
            raise InvalidInput("a reconciliation result is required")
        _require_playlist_id(result.playlist_id)

        playlist_id = result.playlist_id
        add_uris = _unique(result.add_uris)
        remove_list = _unique(remove_uris or [])
        added = 0
        removed = 0

        with CorrelationContext(playlist_id=playlist_id, snapshot_hash=result.snapshot_hash or None,
                                stage='apply'):
            try:
                if add_uris:
                    added = self.mutator.add_tracks(playlist_id, add_uris)
                if remove_list:
                    removed = self.mutator.remove_tracks(playlist_id, remove_list)
            except MutationFailed as e:
                if e.operation == 'add':
                    added = e.applied
                else:
                    removed = e.applied
                partial = ApplyResult(added=added, removed=removed)
                logger.error(f"{'Added' if e.operation == 'add' else 'Removed'} {e.applied} of "
                             f"{e.requested} tracks before failure on playlist {playlist_id}")
                raise ApplyFailed(partial, e.cause) from e

            log_with_fields(logger, "INFO", f"Applied changes to playlist {playlist_id}",
                            added=added, removed=removed)
            return ApplyResult(added=added, removed=removed)

    def search(self, title: str, artist: str = "") -> List[RemoteTrack]:
        """Manual single-track search, de-duplicated and sorted by popularity."""
        if not isinstance(title, str) or not title.strip():
            raise InvalidInput("title is required")
        return self.matcher.search_candidates(LocalTrack(title=title, artist=artist or ""))

    def list_playlists(self) -> List[Playlist]:
        return list(self.catalog.list_playlists())

    def create_playlist(self, name: str, description: str = DEFAULT_PLAYLIST_DESCRIPTION,
                        public: bool = False) -> Playlist:
        """Create an empty playlist to synchronize into.

        Raises:
            InvalidInput: If the name is empty
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("playlist name is required")
        playlist = self.catalog.create_playlist(name.strip(), description=description, public=public)
        logger.info(f"Created playlist '{playlist.name}' ({playlist.id})")
        return playlist
