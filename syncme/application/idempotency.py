import hashlib
from typing import List

from syncme.domain.entities import RemoteTrack
from syncme.domain.normalization import track_key


def build_remote_key(track: RemoteTrack) -> str:
    """Build a stable key for a remote track, preferring its id."""
    if track.id:
        return f"id:{track.id}"
    return f"meta:{track_key(track.name, track.artist)}"


def calculate_snapshot_hash(tracks: List[RemoteTrack]) -> str:
    """Calculate a stable hash for a snapshot of a playlist's membership.

    The hash is deterministic and order-independent, so two reads of an
    unchanged playlist produce the same value.
    """
    if not tracks:
        return hashlib.sha256(b"empty_snapshot").hexdigest()

    keys = sorted(build_remote_key(track) for track in tracks)
    snapshot_str = "\n".join(keys)

    return hashlib.sha256(snapshot_str.encode('utf-8')).hexdigest()
