import json
import os
import signal
from unittest.mock import Mock, patch

import pytest

from syncme.crosscutting.config import SecretManager
from syncme.domain.entities import LocalTrack
from syncme.domain.errors import RemoteUnavailable, Unauthenticated
from syncme.infrastructure.credentials import StaticCredentials, TokenStoreCredentials
from syncme.interfaces.cli import CLI
from syncme.tests.fakes import FakeCatalog, remote


SONGS = {"songs": [
    {"title": "Song A", "artist": "Artist X"},
    {"title": "Song B", "artist": "Artist Y"},
]}


class TestCLI:
    """Tests for CLI functionality."""

    @pytest.fixture(autouse=True)
    def _workspace(self, tmp_path):
        self.tmp_path = tmp_path
        self.secret_manager = SecretManager(str(tmp_path / "config"))
        self.catalog = FakeCatalog()
        self.songs_file = tmp_path / "songs.json"
        self.songs_file.write_text(json.dumps(SONGS))
        self.report_dir = tmp_path / "reports"

        handlers = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        with patch('syncme.interfaces.cli.SpotifyCatalogClient', return_value=self.catalog) as client_cls, \
                patch('syncme.interfaces.cli.SecretManager', return_value=self.secret_manager):
            self.client_cls = client_cls
            self.cli = CLI()
            yield
        for sig, handler in handlers.items():
            signal.signal(sig, handler)

    def _sync_args(self, *extra):
        return ['sync', '--playlist', 'P', '--songs', str(self.songs_file),
                '--report-path', str(self.report_dir), *extra]

    def _report(self):
        files = os.listdir(self.report_dir)
        assert len(files) == 1
        with open(self.report_dir / files[0]) as f:
            return json.load(f)

    def test_no_command_prints_help(self, capsys):
        assert self.cli.run([]) == 1
        assert 'usage' in capsys.readouterr().out

    def test_sync_dry_run(self, capsys):
        self.catalog.search_results['track:"Song A" artist:"Artist X"'] = [remote('r1', 'Song A', 'Artist X')]

        exit_code = self.cli.run(self._sync_args())

        assert exit_code == 0
        assert self.catalog.mutation_calls == []
        out = capsys.readouterr().out
        assert 'to add: 1' in out
        assert 'not found: Artist Y - Song B' in out
        report = self._report()
        assert report['applied'] is None
        assert report['reconciliation']['summary']['toAdd'] == 1

    def test_sync_apply(self):
        self.catalog.search_results['track:"Song A" artist:"Artist X"'] = [remote('r1', 'Song A', 'Artist X')]

        exit_code = self.cli.run(self._sync_args('--apply'))

        assert exit_code == 0
        assert self.catalog.mutation_calls == [('add', 'P', ['spotify:track:r1'])]
        assert self._report()['applied'] == {'addedCount': 1, 'removedCount': 0}

    def test_sync_apply_with_prune(self):
        self.catalog.snapshots['P'] = [remote('old', 'Gone', 'Nobody')]

        assert self.cli.run(self._sync_args('--apply', '--prune')) == 0

        assert self.catalog.mutation_calls == [('remove', 'P', ['spotify:track:old'])]

    def test_prune_without_apply_changes_nothing(self):
        self.catalog.snapshots['P'] = [remote('old', 'Gone', 'Nobody')]

        assert self.cli.run(self._sync_args('--prune')) == 0

        assert self.catalog.mutation_calls == []

    def test_apply_failure_exits_with_error_and_keeps_report(self, capsys):
        self.catalog.search_results['track:"Song A" artist:"Artist X"'] = [remote('r1', 'Song A', 'Artist X')]
        self.catalog.mutation_errors[0] = RemoteUnavailable('503')

        exit_code = self.cli.run(self._sync_args('--apply'))

        assert exit_code == 1
        assert 'Added 0 of 1 tracks before failure' in capsys.readouterr().out
        report = self._report()
        assert report['applied'] == {'addedCount': 0, 'removedCount': 0}
        assert '503' in report['error']

    def test_apply_with_expired_token_reports_authentication(self, caplog):
        self.catalog.search_results['track:"Song A" artist:"Artist X"'] = [remote('r1', 'Song A', 'Artist X')]
        self.catalog.mutation_errors[0] = Unauthenticated('401 token expired')

        exit_code = self.cli.run(self._sync_args('--apply'))

        assert exit_code == 1
        assert 'Not authenticated with Spotify' in caplog.text
        assert self._report()['applied'] == {'addedCount': 0, 'removedCount': 0}

    def test_sync_with_invalid_songs_file(self):
        self.songs_file.write_text('{"songs": "nope"}')

        assert self.cli.run(self._sync_args()) == 1
        assert self.catalog.list_calls == []

    def test_sync_with_missing_songs_file(self):
        args = ['sync', '--playlist', 'P', '--songs', str(self.tmp_path / 'missing.json')]

        assert self.cli.run(args) == 1

    def test_sync_from_folder(self):
        tracks = [LocalTrack(title='Song A', artist='Artist X')]
        with patch('syncme.interfaces.cli.LocalLibraryScanner') as scanner_cls:
            scanner_cls.return_value.scan.return_value = tracks

            exit_code = self.cli.run(['sync', '--playlist', 'P', '--folder', '/music', '--recursive',
                                      '--report-path', str(self.report_dir)])

        assert exit_code == 0
        scanner_cls.assert_called_once_with(recursive=True)
        scanner_cls.return_value.scan.assert_called_once_with('/music')

    def test_sync_requires_source(self):
        with pytest.raises(SystemExit):
            self.cli.run(['sync', '--playlist', 'P'])

    def test_access_token_env_takes_precedence(self):
        with patch.dict(os.environ, {'SPOTIFY_ACCESS_TOKEN': 'env_token'}):
            self.cli.run(['playlists'])

        credentials = self.client_cls.call_args.args[0]
        assert isinstance(credentials, StaticCredentials)
        assert credentials.get_access_token() == 'env_token'

    def test_stored_tokens_used_by_default(self):
        self.cli.run(['playlists'])

        assert isinstance(self.client_cls.call_args.args[0], TokenStoreCredentials)

    def test_settings_are_applied(self):
        with patch.dict(os.environ, {'SYNCME_MARKET': 'DE', 'SYNCME_REQUEST_TIMEOUT': '5'}):
            self.cli.run(['playlists'])

        assert self.client_cls.call_args.kwargs == {'market': 'DE', 'request_timeout': 5}

    def test_invalid_settings_exit_with_error(self):
        with patch.dict(os.environ, {'SYNCME_BATCH_LIMIT': 'many'}):
            assert self.cli.run(['playlists']) == 1

    def test_playlists(self, capsys):
        self.catalog.snapshots['P'] = [remote('r1', 'Song A', 'Artist X')]

        assert self.cli.run(['playlists']) == 0

        assert 'P: P (tracks: 1)' in capsys.readouterr().out

    def test_create_playlist(self, capsys):
        assert self.cli.run(['create-playlist', 'Road Trip']) == 0

        assert self.catalog.created[0].name == 'Road Trip'
        assert "Created playlist 'Road Trip' (pl_1)" in capsys.readouterr().out

    def test_search(self, capsys):
        self.catalog.search_results['track:"Song A" artist:"Artist X"'] = [
            remote('r1', 'Song A', 'Artist X', popularity=50)
        ]

        assert self.cli.run(['search', 'Song A', '--artist', 'Artist X']) == 0

        assert 'spotify:track:r1: Artist X - Song A' in capsys.readouterr().out

    def test_search_without_results(self, capsys):
        assert self.cli.run(['search', 'Nothing']) == 0
        assert 'No tracks found' in capsys.readouterr().out

    def test_scan_writes_songs_file(self):
        output = self.tmp_path / 'scanned.json'
        tracks = [LocalTrack(title='Song A', artist='Artist X', album='LP', duration_seconds=200.0,
                             source_path='/music/a.mp3')]
        with patch('syncme.interfaces.cli.LocalLibraryScanner') as scanner_cls:
            scanner_cls.return_value.scan.return_value = tracks

            assert self.cli.run(['scan', '/music', '--output', str(output)]) == 0

        data = json.loads(output.read_text())
        assert data['songs'][0] == {'title': 'Song A', 'artist': 'Artist X', 'album': 'LP',
                                    'duration': 200.0, 'path': '/music/a.mp3'}

    def test_scan_missing_folder(self):
        assert self.cli.run(['scan', str(self.tmp_path / 'missing')]) == 1

    def test_status(self, capsys):
        self.secret_manager.save_spotify_tokens('secret_access_token', scope='playlist-read-private')

        assert self.cli.run(['status']) == 0

        out = capsys.readouterr().out
        assert 'Logged in: yes' in out
        assert 'Missing scopes: playlist-modify-public, playlist-modify-private' in out
        assert 'secret_access_token' not in out

    def test_logout(self):
        self.secret_manager.save_spotify_tokens('secret_access_token')

        assert self.cli.run(['logout']) == 0

        assert self.secret_manager.get_spotify_tokens() is None

    def test_unauthenticated_exits_with_error(self):
        self.catalog.list_playlists = Mock(side_effect=Unauthenticated("no token"))

        assert self.cli.run(['playlists']) == 1
