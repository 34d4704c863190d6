import logging
from typing import Callable, List, Sequence

from syncme.domain.errors import MutationFailed
from syncme.domain.ports import CatalogClient


logger = logging.getLogger(__name__)

# Maximum number of items the remote service accepts per mutation call
REMOTE_BATCH_LIMIT = 100


class BatchMutator:
    """Applies playlist additions and removals in fixed-size chunks.

    Chunks are sent in order. When a chunk fails no further chunks are sent,
    and the count of items committed by earlier chunks is carried on the
    raised MutationFailed.
    """

    def __init__(self, catalog: CatalogClient, batch_size: int = REMOTE_BATCH_LIMIT):
        """Initialize batch mutator.

        Args:
            catalog: Remote catalog that performs the mutations
            batch_size: Maximum number of URIs per call, at most REMOTE_BATCH_LIMIT
        """
        if batch_size < 1 or batch_size > REMOTE_BATCH_LIMIT:
            raise ValueError(f"batch_size must be between 1 and {REMOTE_BATCH_LIMIT}")
        self.catalog = catalog
        self.batch_size = batch_size

    def split_into_batches(self, uris: Sequence[str]) -> List[List[str]]:
        """Split URIs into consecutive batches of at most batch_size."""
        uris = list(uris)
        return [uris[i:i + self.batch_size] for i in range(0, len(uris), self.batch_size)]

    def add_tracks(self, playlist_id: str, uris: Sequence[str]) -> int:
        """Append tracks to a playlist.

        Returns:
            Number of URIs added

        Raises:
            MutationFailed: If a chunk fails; `applied` holds the count added before it
        """
        return self._apply('add', self.catalog.add_items, playlist_id, uris)

    def remove_tracks(self, playlist_id: str, uris: Sequence[str]) -> int:
        """Remove tracks from a playlist.

        Returns:
            Number of URIs removed

        Raises:
            MutationFailed: If a chunk fails; `applied` holds the count removed before it
        """
        return self._apply('remove', self.catalog.remove_items, playlist_id, uris)

    def _apply(self, operation: str, call: Callable[[str, List[str]], None],
               playlist_id: str, uris: Sequence[str]) -> int:
        batches = self.split_into_batches(uris)
        requested = sum(len(batch) for batch in batches)
        applied = 0

        for batch_index, batch in enumerate(batches):
            try:
                call(playlist_id, batch)
            except Exception as e:
                logger.error(f"{operation} batch {batch_index} on playlist {playlist_id} failed "
                             f"after {applied} of {requested} tracks: {e}")
                raise MutationFailed(operation, applied, requested, e) from e

            applied += len(batch)
            logger.info(f"{operation} batch {batch_index} completed: "
                        f"{applied}/{requested} tracks on playlist {playlist_id}")

        return applied
