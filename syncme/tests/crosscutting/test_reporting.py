import json
import os

import pytest

from syncme.crosscutting.reporting import (
    SyncReport, apply_result_to_json, local_track_from_json, local_track_to_json,
    local_tracks_from_json, reconciliation_to_json, summarize
)
from syncme.domain.entities import (
    ApplyResult, ConfidenceTier, LocalTrack, MatchedPair, ReconciliationResult
)
from syncme.domain.errors import InvalidInput
from syncme.tests.fakes import remote


SONG_A = LocalTrack(title="Song A", artist="Artist X", album="LP", duration_seconds=200.0, source_path="/m/a.mp3")
SONG_B = LocalTrack(title="Song B", artist="Artist Y")
SONG_C = LocalTrack(title="Song C", artist="Artist Z")


def _result():
    return ReconciliationResult(
        playlist_id="P",
        in_both=[MatchedPair(SONG_A, remote("r1", "Song A", "Artist X"), ConfidenceTier.HIGH)],
        only_local=[SONG_B],
        only_remote=[remote("r2", "Other", "Other")],
        to_add=[MatchedPair(SONG_C, remote("r3", "Song C", "Artist Z"), ConfidenceTier.LOW)],
        snapshot_hash="abc",
    )


class TestLocalTrackJson:
    """Tests for songs sent by API clients."""

    def test_from_json(self):
        track = local_track_from_json({"title": "Song A", "artist": "Artist X", "album": "LP",
                                       "duration": 200, "path": "/m/a.mp3"})

        assert track == SONG_A

    def test_json_shape_is_symmetric(self):
        assert local_track_from_json(local_track_to_json(SONG_A)) == SONG_A

    def test_optional_fields_default(self):
        track = local_track_from_json({"title": "Intro"})

        assert track.artist == "" and track.duration_seconds == 0.0

    @pytest.mark.parametrize("data", [
        {"artist": "No title"},
        {"title": "   "},
        {"title": "Song", "duration": "long"},
        "Song A",
    ])
    def test_invalid_song_is_rejected(self, data):
        with pytest.raises(InvalidInput):
            local_track_from_json(data)

    def test_songs_must_be_a_list(self):
        with pytest.raises(InvalidInput):
            local_tracks_from_json({"title": "Song"})


class TestSummaries:
    """Tests for reconciliation serialization."""

    def test_summarize(self):
        summary = summarize(_result())

        assert summary == {
            "localTracks": 3,
            "inBoth": 1,
            "toAdd": 1,
            "onlyLocal": 1,
            "onlyRemote": 1,
            "matchRate": pytest.approx(2 / 3),
            "byTier": {"HIGH": 1, "MEDIUM": 0, "LOW": 1},
        }

    def test_summarize_empty(self):
        assert summarize(ReconciliationResult(playlist_id="P"))["matchRate"] == 0.0

    def test_reconciliation_to_json(self):
        data = reconciliation_to_json(_result())

        assert data["playlistId"] == "P"
        assert data["snapshotHash"] == "abc"
        assert data["inBoth"][0]["remote"]["id"] == "r1"
        assert data["inBoth"][0]["confidenceTier"] == "HIGH"
        assert data["toAdd"][0]["remote"]["uri"] == "spotify:track:r3"
        assert data["onlyLocal"][0]["title"] == "Song B"
        assert data["onlyRemote"][0]["id"] == "r2"

    def test_apply_result_to_json(self):
        assert apply_result_to_json(ApplyResult(added=240, removed=3)) == {"addedCount": 240, "removedCount": 3}


class TestSyncReport:
    """Tests for report files."""

    def test_write_report(self, tmp_path):
        report = SyncReport(run_id="run_1", result=_result(), applied=ApplyResult(added=1))

        path = report.write(str(tmp_path / "reports"))

        assert os.path.basename(path) == "sync_report_run_1.json"
        with open(path) as f:
            data = json.load(f)
        assert data["runId"] == "run_1"
        assert data["applied"] == {"addedCount": 1, "removedCount": 0}
        assert data["error"] is None
        assert data["reconciliation"]["summary"]["toAdd"] == 1

    def test_report_without_apply(self):
        data = SyncReport(run_id="run_2", result=_result()).to_json()

        assert data["applied"] is None
