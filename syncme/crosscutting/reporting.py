import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from syncme.domain.entities import (
    ApplyResult, ConfidenceTier, LocalTrack, MatchedPair, Playlist, ReconciliationResult, RemoteTrack
)
from syncme.domain.errors import InvalidInput


def local_track_to_json(track: LocalTrack) -> Dict[str, Any]:
    return {
        "title": track.title,
        "artist": track.artist,
        "album": track.album,
        "duration": track.duration_seconds,
        "path": track.source_path,
    }


def local_track_from_json(data: Dict[str, Any]) -> LocalTrack:
    """Deserialize a local track as sent by API clients ({title, artist, album, duration, path})."""
    if not isinstance(data, dict):
        raise InvalidInput(f"song must be an object, got {type(data).__name__}")
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise InvalidInput("every song needs a title")
    try:
        duration = float(data.get("duration") or 0)
    except (TypeError, ValueError):
        raise InvalidInput(f"invalid duration for '{title}': {data.get('duration')!r}")
    return LocalTrack(
        title=title,
        artist=str(data.get("artist") or ""),
        album=str(data.get("album") or ""),
        duration_seconds=duration,
        source_path=str(data.get("path") or ""),
    )


def local_tracks_from_json(data: Any) -> List[LocalTrack]:
    if not isinstance(data, list):
        raise InvalidInput("songs must be an array")
    return [local_track_from_json(item) for item in data]


def remote_track_to_json(track: RemoteTrack) -> Dict[str, Any]:
    return {
        "id": track.id,
        "name": track.name,
        "artist": track.artist,
        "album": track.album,
        "uri": track.uri,
        "popularity": track.popularity,
    }


def matched_pair_to_json(pair: MatchedPair) -> Dict[str, Any]:
    return {
        "local": local_track_to_json(pair.local),
        "remote": remote_track_to_json(pair.remote),
        "confidenceTier": pair.confidence_tier.value,
    }


def playlist_to_json(playlist: Playlist) -> Dict[str, Any]:
    return {
        "id": playlist.id,
        "name": playlist.name,
        "ownerId": playlist.owner_id,
        "trackCount": playlist.track_count,
        "url": playlist.url,
    }


def apply_result_to_json(result: ApplyResult) -> Dict[str, Any]:
    return {"addedCount": result.added, "removedCount": result.removed}


def summarize(result: ReconciliationResult) -> Dict[str, Any]:
    """Summary totals of a reconciliation result, including counts per confidence tier."""
    matched = result.in_both + result.to_add
    by_tier = {tier.value: 0 for tier in ConfidenceTier}
    for pair in matched:
        by_tier[pair.confidence_tier.value] += 1

    total = len(matched) + len(result.only_local)
    return {
        "localTracks": total,
        "inBoth": len(result.in_both),
        "toAdd": len(result.to_add),
        "onlyLocal": len(result.only_local),
        "onlyRemote": len(result.only_remote),
        "matchRate": len(matched) / total if total else 0.0,
        "byTier": by_tier,
    }


def reconciliation_to_json(result: ReconciliationResult) -> Dict[str, Any]:
    """Serialize a reconciliation result to JSON."""
    return {
        "playlistId": result.playlist_id,
        "snapshotHash": result.snapshot_hash,
        "summary": summarize(result),
        "inBoth": [matched_pair_to_json(p) for p in result.in_both],
        "onlyLocal": [local_track_to_json(t) for t in result.only_local],
        "onlyRemote": [remote_track_to_json(t) for t in result.only_remote],
        "toAdd": [matched_pair_to_json(p) for p in result.to_add],
    }


@dataclass
class SyncReport:
    """Report of one synchronize run and, if committed, its apply outcome."""

    run_id: str
    result: ReconciliationResult
    applied: Optional[ApplyResult] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "runId": self.run_id,
            "createdAt": self.created_at.isoformat(),
            "applied": apply_result_to_json(self.applied) if self.applied else None,
            "error": self.error,
            "reconciliation": reconciliation_to_json(self.result),
        }

    def write(self, report_dir: str) -> str:
        """Write the report as JSON into report_dir and return the file path."""
        os.makedirs(report_dir, exist_ok=True)
        report_file = os.path.join(report_dir, f"sync_report_{self.run_id}.json")
        with open(report_file, 'w') as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)
        return report_file
