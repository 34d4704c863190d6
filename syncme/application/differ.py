import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from syncme.application.idempotency import calculate_snapshot_hash
from syncme.application.matching import TrackMatcher
from syncme.crosscutting.logging import CorrelationContext, log_with_fields
from syncme.domain.entities import (
    LocalTrack, MatchCandidate, MatchedPair, ReconciliationResult, RemoteTrack
)
from syncme.domain.normalization import same_recording
from syncme.domain.ports import CatalogClient


logger = logging.getLogger(__name__)


def take_from_pool(pool: List[RemoteTrack], candidate: RemoteTrack) -> Optional[RemoteTrack]:
    """Remove and return the first pool entry that is the same recording as `candidate`."""
    for index, entry in enumerate(pool):
        if same_recording(candidate, entry):
            return pool.pop(index)
    return None


class PlaylistDiffer:
    """Partitions a local collection against one snapshot of a remote playlist."""

    def __init__(self, catalog: CatalogClient, matcher: TrackMatcher, max_workers: int = 1):
        """Initialize the differ.

        Args:
            catalog: Remote catalog used to read the playlist snapshot
            matcher: Track matcher invoked once per local track
            max_workers: Number of threads used for matching; 1 matches sequentially
        """
        self.catalog = catalog
        self.matcher = matcher
        self.max_workers = max(1, max_workers)

    def diff(self, local_tracks: Sequence[LocalTrack], playlist_id: str) -> ReconciliationResult:
        """Compute the reconciliation result for a local collection and playlist.

        Args:
            local_tracks: Local collection
            playlist_id: Remote playlist to compare against

        Returns:
            ReconciliationResult whose in_both, only_local and to_add partition local_tracks
        """
        with CorrelationContext(playlist_id=playlist_id, stage='snapshot'):
            snapshot = list(self.catalog.list_playlist_tracks(playlist_id))
            snapshot_hash = calculate_snapshot_hash(snapshot)
            logger.info(f"Read {len(snapshot)} tracks from playlist {playlist_id}")

        with CorrelationContext(playlist_id=playlist_id, snapshot_hash=snapshot_hash, stage='match'):
            candidates = self._match_all(local_tracks)

        with CorrelationContext(playlist_id=playlist_id, snapshot_hash=snapshot_hash, stage='diff'):
            result = ReconciliationResult(playlist_id=playlist_id, snapshot_hash=snapshot_hash)
            pool = list(snapshot)

            for track, candidate in zip(local_tracks, candidates):
                if candidate is None:
                    result.only_local.append(track)
                    continue

                existing = take_from_pool(pool, candidate.track)
                if existing is not None:
                    result.in_both.append(MatchedPair(local=track, remote=existing,
                                                      confidence_tier=candidate.confidence_tier))
                else:
                    result.to_add.append(MatchedPair(local=track, remote=candidate.track,
                                                     confidence_tier=candidate.confidence_tier))

            result.only_remote = pool

            log_with_fields(logger, "INFO", f"Diff computed for playlist {playlist_id}", {
                "in_both": len(result.in_both),
                "to_add": len(result.to_add),
                "only_local": len(result.only_local),
                "only_remote": len(result.only_remote),
            })
            return result

    def _match_all(self, local_tracks: Sequence[LocalTrack]) -> List[Optional[MatchCandidate]]:
        if self.max_workers == 1 or len(local_tracks) <= 1:
            return [self.matcher.match(track) for track in local_tracks]

        # Workers run in a copy of the caller's correlation context
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(contextvars.copy_context().run, self.matcher.match, track)
                       for track in local_tracks]
            return [future.result() for future in futures]
