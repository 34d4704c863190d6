import argparse
import json
import logging
import os
import signal
import sys
import time
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from syncme.application.reconciliation import ReconciliationOrchestrator
from syncme.crosscutting.config import ConfigError, SecretManager, load_settings
from syncme.crosscutting.logging import setup_logging
from syncme.crosscutting.reporting import (
    SyncReport, local_track_to_json, local_tracks_from_json, summarize
)
from syncme.domain.entities import LocalTrack
from syncme.domain.errors import (
    ApplyFailed, InvalidInput, NotFound, RemoteUnavailable, Unauthenticated
)
from syncme.infrastructure.credentials import StaticCredentials, TokenStoreCredentials
from syncme.infrastructure.providers.spotify import SpotifyCatalogClient
from syncme.infrastructure.scanner import LocalLibraryScanner


logger = logging.getLogger(__name__)


class CLI:
    """Command Line Interface for SyncMe."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None
        self._run_id = self._create_run_id()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='INFO',
            help='Set logging level'
        )
        common.add_argument(
            '--log-format',
            choices=['text', 'json'],
            default='text',
            help='Log output format (default: text)'
        )

        parser = argparse.ArgumentParser(
            prog='syncme',
            description='Reconcile a local music folder with a Spotify playlist'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        scan_parser = subparsers.add_parser('scan', parents=[common], help='Scan a local music folder')
        scan_parser.add_argument('folder', help='Folder containing audio files')
        scan_parser.add_argument('--recursive', action='store_true', help='Descend into subfolders')
        scan_parser.add_argument('--output', help='Write scanned songs to this JSON file')

        subparsers.add_parser('playlists', parents=[common], help='List your Spotify playlists')

        create_parser = subparsers.add_parser('create-playlist', parents=[common],
                                              help='Create an empty Spotify playlist')
        create_parser.add_argument('name', help='Playlist name')
        create_parser.add_argument('--public', action='store_true', help='Make the playlist public')
        create_parser.add_argument('--description', default=None, help='Playlist description')

        sync_parser = subparsers.add_parser('sync', parents=[common],
                                            help='Diff a local collection against a playlist')
        sync_parser.add_argument('--playlist', required=True, help='Spotify playlist ID')
        source = sync_parser.add_mutually_exclusive_group(required=True)
        source.add_argument('--folder', help='Folder to scan for local tracks')
        source.add_argument('--songs', help='JSON file with scanned songs')
        sync_parser.add_argument('--recursive', action='store_true', help='Descend into subfolders')
        sync_parser.add_argument('--apply', action='store_true', help='Add matched tracks to the playlist')
        sync_parser.add_argument('--prune', action='store_true',
                                 help='With --apply, also remove playlist tracks missing locally')
        sync_parser.add_argument('--workers', type=int, default=None, help='Parallel matching threads')
        sync_parser.add_argument('--report-path', default='reports/',
                                 help='Path to save reports (default: reports/)')

        search_parser = subparsers.add_parser('search', parents=[common], help='Search Spotify for one track')
        search_parser.add_argument('title', help='Track title')
        search_parser.add_argument('--artist', default='', help='Track artist')

        subparsers.add_parser('status', parents=[common], help='Show configuration and login state')
        subparsers.add_parser('logout', parents=[common], help='Forget the stored Spotify tokens')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.warning(f"Received signal {signum}, shutting down...")
            sys.exit(130)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _setup_logging(self, level: str, log_format: str) -> None:
        setup_logging(level=level, structured=(log_format == 'json'), run_id=self._run_id)

    def _create_run_id(self) -> str:
        return f"syncme_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def _create_credentials(self):
        """Prefer SPOTIFY_ACCESS_TOKEN, otherwise the token stored by the OAuth callback."""
        token = os.getenv('SPOTIFY_ACCESS_TOKEN')
        if token and token.strip():
            return StaticCredentials(token)
        return TokenStoreCredentials(SecretManager())

    def _create_orchestrator(self, workers: Optional[int] = None) -> ReconciliationOrchestrator:
        settings = load_settings()
        catalog = SpotifyCatalogClient(
            self._create_credentials(),
            market=settings.market,
            request_timeout=settings.request_timeout,
        )
        return ReconciliationOrchestrator(
            catalog,
            search_limit=settings.search_limit,
            batch_size=settings.batch_limit,
            max_workers=workers or settings.match_workers,
        )

    def _load_local_tracks(self, args: argparse.Namespace) -> List[LocalTrack]:
        if getattr(args, 'songs', None):
            try:
                with open(args.songs, 'r') as f:
                    data = json.load(f)
            except (IOError, json.JSONDecodeError) as e:
                raise InvalidInput(f"Cannot read songs file {args.songs}: {e}")
            if isinstance(data, dict):
                data = data.get('songs', data.get('files'))
            return local_tracks_from_json(data)

        scanner = LocalLibraryScanner(recursive=getattr(args, 'recursive', False))
        return scanner.scan(args.folder)

    def _scan(self, args: argparse.Namespace) -> None:
        tracks = LocalLibraryScanner(recursive=args.recursive).scan(args.folder)

        if args.output:
            with open(args.output, 'w') as f:
                json.dump({'songs': [local_track_to_json(t) for t in tracks]}, f, indent=2, ensure_ascii=False)
            logger.info(f"Saved {len(tracks)} songs to {args.output}")

        print(f"Found {len(tracks)} music files in {args.folder}")
        for track in tracks:
            print(f"{track.artist} - {track.title} [{track.album}] ({track.duration_seconds:.0f}s)")

    def _list_playlists(self, args: argparse.Namespace) -> None:
        playlists = self._create_orchestrator().list_playlists()

        print("Available playlists:")
        print("-" * 50)
        for playlist in playlists:
            print(f"{playlist.id}: {playlist.name} (tracks: {playlist.track_count})")

    def _create_playlist(self, args: argparse.Namespace) -> None:
        orchestrator = self._create_orchestrator()
        kwargs = {'public': args.public}
        if args.description is not None:
            kwargs['description'] = args.description
        playlist = orchestrator.create_playlist(args.name, **kwargs)
        print(f"Created playlist '{playlist.name}' ({playlist.id}) {playlist.url or ''}".rstrip())

    def _sync(self, args: argparse.Namespace) -> None:
        local_tracks = self._load_local_tracks(args)
        orchestrator = self._create_orchestrator(workers=args.workers)

        result = orchestrator.synchronize(local_tracks, args.playlist)
        summary = summarize(result)
        print(f"In playlist: {summary['inBoth']}, to add: {summary['toAdd']}, "
              f"not found: {summary['onlyLocal']}, only in playlist: {summary['onlyRemote']}")
        for track in result.only_local:
            print(f"  not found: {track.artist} - {track.title}")

        report = SyncReport(run_id=self._run_id, result=result)
        try:
            if args.apply:
                remove_uris = [t.uri for t in result.only_remote] if args.prune else None
                report.applied = orchestrator.apply(result, remove_uris=remove_uris)
                print(f"Added {report.applied.added} of {len(result.to_add)} tracks, "
                      f"removed {report.applied.removed}")
            elif args.prune:
                logger.warning("--prune has no effect without --apply")
        except ApplyFailed as e:
            report.applied = e.result
            report.error = str(e.cause)
            print(f"Added {e.result.added} of {len(result.to_add)} tracks before failure: {e.cause}")
            raise
        finally:
            report_file = report.write(args.report_path)
            logger.info(f"Report saved to: {report_file}")

    def _search(self, args: argparse.Namespace) -> None:
        candidates = self._create_orchestrator().search(args.title, args.artist)
        if not candidates:
            print("No tracks found")
            return
        for remote in candidates:
            print(f"{remote.uri}: {remote.artist} - {remote.name} [{remote.album}] "
                  f"(popularity {remote.popularity})")

    def _status(self, args: argparse.Namespace) -> None:
        summary = SecretManager().get_config_summary()
        print(f"Config directory: {summary['config_dir']}")
        print(f"Client ID configured: {'yes' if summary['has_client_id'] else 'no'}")
        print(f"Client secret configured: {'yes' if summary['has_client_secret'] else 'no'}")
        print(f"Logged in: {'yes' if summary['has_spotify_tokens'] else 'no'}")
        if summary['missing_scopes']:
            print(f"Missing scopes: {', '.join(summary['missing_scopes'])}")

    def _logout(self, args: argparse.Namespace) -> None:
        SecretManager().clear_tokens()
        print("Stored Spotify tokens removed")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        self._run_id = self._create_run_id()

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return 1

        self._setup_logging(args.log_level, args.log_format)

        handlers = {
            'scan': self._scan,
            'playlists': self._list_playlists,
            'create-playlist': self._create_playlist,
            'sync': self._sync,
            'search': self._search,
            'status': self._status,
            'logout': self._logout,
        }

        try:
            handlers[args.command](args)
            return 0
        except Unauthenticated as e:
            logger.error(f"Not authenticated with Spotify: {e}")
        except InvalidInput as e:
            logger.error(f"Invalid input: {e}")
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
        except NotFound as e:
            logger.error(f"Not found: {e}")
        except RemoteUnavailable as e:
            logger.error(f"Spotify unavailable: {e}")
        except ApplyFailed as e:
            if isinstance(e.cause, Unauthenticated):
                logger.error(f"Not authenticated with Spotify: {e}")
            elif isinstance(e.cause, RemoteUnavailable):
                logger.error(f"Spotify unavailable: {e}")
            else:
                logger.error(f"Sync failed: {e}")
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            logger.debug(f"CLI execution time: {time.time() - self._start_time:.2f}s")
        return 1


def main():
    """Main entry point."""
    load_dotenv()
    sys.exit(CLI().run())


if __name__ == '__main__':
    main()
