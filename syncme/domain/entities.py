from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class LocalTrack:
    """Metadata record for a file in the local collection."""

    title: str
    artist: str
    album: str = ""
    duration_seconds: float = 0.0
    source_path: str = ""


@dataclass(frozen=True)
class RemoteTrack:
    """Track resource from the remote catalog."""

    id: str
    name: str
    artist: str
    album: str = ""
    uri: str = ""
    popularity: int = 0


class ConfidenceTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class MatchCandidate:
    """Best remote candidate for one local track."""

    track: RemoteTrack
    confidence_tier: ConfidenceTier
    # Name of the cascade query that produced the candidate
    strategy: str = ""


@dataclass(frozen=True)
class MatchedPair:
    local: LocalTrack
    remote: RemoteTrack
    confidence_tier: ConfidenceTier


@dataclass
class ReconciliationResult:
    """Partition of a local collection against a remote playlist snapshot."""

    playlist_id: str
    in_both: List[MatchedPair] = field(default_factory=list)
    only_local: List[LocalTrack] = field(default_factory=list)
    only_remote: List[RemoteTrack] = field(default_factory=list)
    to_add: List[MatchedPair] = field(default_factory=list)
    snapshot_hash: str = ""

    @property
    def add_uris(self) -> List[str]:
        return [pair.remote.uri for pair in self.to_add]


@dataclass(frozen=True)
class ApplyResult:
    """Counts of playlist items applied by a commit."""

    added: int = 0
    removed: int = 0


@dataclass(frozen=True)
class Playlist:
    """Remote playlist owned or followed by the authenticated user."""

    id: str
    name: str
    owner_id: str = ""
    track_count: int = 0
    url: Optional[str] = None
