import logging
import os
import time
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
from flask import Flask, jsonify, redirect, request

from syncme.application.reconciliation import ReconciliationOrchestrator
from syncme.crosscutting.config import (
    DEFAULT_REDIRECT_URI, ConfigError, SecretManager, load_settings
)
from syncme.crosscutting.reporting import (
    apply_result_to_json, local_track_to_json, local_tracks_from_json, playlist_to_json,
    reconciliation_to_json, remote_track_to_json
)
from syncme.domain.errors import (
    ApplyFailed, InvalidInput, NotFound, RemoteUnavailable, Unauthenticated
)
from syncme.domain.ports import CatalogClient
from syncme.infrastructure.credentials import TokenStoreCredentials
from syncme.infrastructure.providers.spotify import SpotifyCatalogClient
from syncme.infrastructure.scanner import LocalLibraryScanner


SPOTIFY_AUTHORIZE_URL = 'https://accounts.spotify.com/authorize'
SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'


class HTTPServer:
    """HTTP API for SyncMe: OAuth login, folder scanning and playlist reconciliation."""

    def __init__(self, host: str = 'localhost', port: int = 3001, debug: bool = False,
                 secret_manager: Optional[SecretManager] = None,
                 catalog: Optional[CatalogClient] = None,
                 scanner: Optional[LocalLibraryScanner] = None):
        """Initialize HTTP server.

        Args:
            host: Interface to bind
            port: Port to listen on
            debug: Flask debug mode
            secret_manager: Token and client config store; ~/.syncme if omitted
            catalog: Remote catalog; a Spotify client reading stored tokens if omitted
            scanner: Local folder scanner
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.settings = load_settings()
        self.secret_manager = secret_manager or SecretManager()
        self.credentials = TokenStoreCredentials(self.secret_manager)
        self.catalog = catalog or SpotifyCatalogClient(
            self.credentials,
            market=self.settings.market,
            request_timeout=self.settings.request_timeout,
        )
        self.scanner = scanner or LocalLibraryScanner()

        self._setup_routes()
        self._setup_error_handlers()

    def _orchestrator(self) -> ReconciliationOrchestrator:
        return ReconciliationOrchestrator(
            self.catalog,
            search_limit=self.settings.search_limit,
            batch_size=self.settings.batch_limit,
            max_workers=self.settings.match_workers,
        )

    def _redirect_uri(self) -> str:
        return self.secret_manager.load_env_vars().get('SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI

    @staticmethod
    def _json_body() -> Dict[str, Any]:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise InvalidInput("JSON object body is required")
        return body

    def _setup_error_handlers(self) -> None:
        """Map engine errors to HTTP responses."""

        @self.app.errorhandler(Unauthenticated)
        def unauthenticated(e):
            return jsonify({'error': 'Not authenticated with Spotify', 'details': str(e)}), 401

        @self.app.errorhandler(InvalidInput)
        def invalid_input(e):
            return jsonify({'error': str(e)}), 400

        @self.app.errorhandler(NotFound)
        def not_found(e):
            return jsonify({'error': 'Not found', 'details': str(e)}), 404

        @self.app.errorhandler(RemoteUnavailable)
        def remote_unavailable(e):
            self.logger.error(f"Spotify unavailable: {e}")
            return jsonify({'error': 'Spotify is unavailable', 'details': str(e)}), 502

        @self.app.errorhandler(ApplyFailed)
        def apply_failed(e):
            return self._apply_failure_response(e)

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'authenticated': self.credentials.get_access_token() is not None,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'SyncMe HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'login': '/login',
                    'oauth_callback': '/callback',
                    'scan_folder': '/api/scan-folder',
                    'playlists': '/api/playlists',
                    'create_playlist': '/api/create-playlist',
                    'sync': '/api/sync',
                    'apply': '/api/apply',
                    'search': '/api/search',
                }
            }), 200

        @self.app.route('/login', methods=['GET'])
        def login():
            """Redirect to the Spotify authorization page."""
            try:
                config = self.secret_manager.get_spotify_client_config()
            except ConfigError as e:
                self.logger.error(f"Spotify login unavailable: {e}")
                return jsonify({'error': 'Spotify client is not configured'}), 500

            auth_url = SPOTIFY_AUTHORIZE_URL + '?' + urlencode({
                'response_type': 'code',
                'client_id': config['client_id'],
                'scope': self.secret_manager.get_spotify_scope_string(),
                'redirect_uri': config['redirect_uri'],
            })
            return redirect(auth_url)

        @self.app.route('/callback', methods=['GET'])
        def oauth_callback():
            """OAuth callback endpoint for Spotify."""
            error = request.args.get('error')
            if error:
                self.logger.error(f"OAuth error: {error}")
                return jsonify({'error': 'OAuth authorization failed', 'details': error}), 400

            code = request.args.get('code')
            if not code:
                return jsonify({'error': 'Authorization code not provided'}), 400

            tokens = self._exchange_code_for_tokens(code)
            if not tokens:
                return jsonify({'error': 'Failed to authenticate with Spotify'}), 500

            self.secret_manager.save_spotify_tokens(
                access_token=tokens['access_token'],
                refresh_token=tokens.get('refresh_token'),
                expires_at=tokens['expires_at'],
                scope=tokens.get('scope'),
            )
            missing = self.secret_manager.get_missing_spotify_scopes(tokens.get('scope') or '')
            if missing:
                self.logger.warning(f"Spotify token is missing scopes: {', '.join(missing)}")

            self.logger.info("OAuth tokens saved successfully")
            return jsonify({'message': 'Successfully authenticated with Spotify!'}), 200

        @self.app.route('/api/scan-folder', methods=['POST'])
        def scan_folder():
            """Scan a local folder for music files."""
            body = self._json_body()
            folder_path = body.get('folderPath')
            if not folder_path:
                raise InvalidInput("Folder path is required")

            tracks = self.scanner.scan(folder_path)
            return jsonify({'files': [local_track_to_json(t) for t in tracks]}), 200

        @self.app.route('/api/playlists', methods=['GET'])
        def list_playlists():
            playlists = self._orchestrator().list_playlists()
            return jsonify({'playlists': [playlist_to_json(p) for p in playlists]}), 200

        @self.app.route('/api/create-playlist', methods=['POST'])
        def create_playlist():
            """Create a playlist and fill it with the matches for the given songs."""
            body = self._json_body()
            name = body.get('playlistName')
            songs = local_tracks_from_json(body.get('songs'))
            if not isinstance(name, str) or not name.strip():
                raise InvalidInput("Playlist name is required")
            self._require_credentials()

            orchestrator = self._orchestrator()
            playlist = orchestrator.create_playlist(name)
            added = 0
            try:
                if songs:
                    result = orchestrator.synchronize(songs, playlist.id)
                    added = orchestrator.apply(result).added
            except ApplyFailed as e:
                return self._apply_failure_response(e, playlist={
                    **playlist_to_json(playlist),
                    'tracksAdded': e.result.added,
                    'totalSongs': len(songs),
                })
            except (Unauthenticated, RemoteUnavailable, NotFound) as e:
                self.logger.error(f"Playlist {playlist.id} created but not filled: {e}")
                return jsonify({
                    'error': 'Playlist created but tracks were not added',
                    'details': str(e),
                    'playlist': {**playlist_to_json(playlist), 'tracksAdded': 0, 'totalSongs': len(songs)},
                }), self._failure_status(e)

            return jsonify({'playlist': {
                **playlist_to_json(playlist),
                'tracksAdded': added,
                'totalSongs': len(songs),
            }}), 200

        @self.app.route('/api/sync', methods=['POST'])
        def sync():
            """Compute the diff between the given songs and a playlist."""
            body = self._json_body()
            songs = local_tracks_from_json(body.get('songs'))
            result = self._orchestrator().synchronize(songs, body.get('playlistId'))
            return jsonify(reconciliation_to_json(result)), 200

        @self.app.route('/api/apply', methods=['POST'])
        def apply():
            """Recompute the diff and commit it, optionally removing tracks missing locally."""
            body = self._json_body()
            songs = local_tracks_from_json(body.get('songs'))
            orchestrator = self._orchestrator()

            result = orchestrator.synchronize(songs, body.get('playlistId'))
            remove_uris = [t.uri for t in result.only_remote] if body.get('prune') else None
            applied = orchestrator.apply(result, remove_uris=remove_uris)

            return jsonify({
                'reconciliation': reconciliation_to_json(result),
                'applied': apply_result_to_json(applied),
            }), 200

        @self.app.route('/api/search', methods=['GET'])
        def search():
            """Manual single-track search."""
            tracks = self._orchestrator().search(request.args.get('title', ''),
                                                 request.args.get('artist', ''))
            return jsonify({'tracks': [remote_track_to_json(t) for t in tracks]}), 200

    @staticmethod
    def _failure_status(error: Exception) -> int:
        if isinstance(error, Unauthenticated):
            return 401
        if isinstance(error, NotFound):
            return 404
        if isinstance(error, RemoteUnavailable):
            return 502
        return 500

    def _apply_failure_response(self, error: ApplyFailed, **extra):
        """Error response for a partially applied commit, status taken from its cause."""
        self.logger.error(f"Apply failed: {error}")
        body = {
            'error': 'Playlist update failed',
            'details': str(error.cause),
            'applied': apply_result_to_json(error.result),
        }
        body.update(extra)
        return jsonify(body), self._failure_status(error.cause)

    def _require_credentials(self) -> None:
        """Fail fast before any remote call when no token is stored."""
        if self.credentials.get_access_token() is None:
            raise Unauthenticated("Not authenticated with Spotify")

    def _exchange_code_for_tokens(self, code: str) -> Optional[Dict[str, Any]]:
        """Exchange authorization code for access and refresh tokens."""
        try:
            config = self.secret_manager.get_spotify_client_config()
        except ConfigError as e:
            self.logger.error(f"Spotify client credentials not configured: {e}")
            return None

        data = {
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': config['redirect_uri'],
            'client_id': config['client_id'],
            'client_secret': config['client_secret'],
        }

        try:
            response = requests.post(SPOTIFY_TOKEN_URL, data=data, timeout=self.settings.request_timeout)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Token exchange error: {e}")
            return None

        if response.status_code != 200:
            self.logger.error(f"Token exchange failed: {response.status_code} - {response.text}")
            return None

        tokens = response.json()
        return {
            'access_token': tokens.get('access_token'),
            'refresh_token': tokens.get('refresh_token'),
            'scope': tokens.get('scope'),
            'expires_at': time.time() + tokens.get('expires_in', 3600),
        }

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting SyncMe HTTP server on {self.host}:{self.port}")
        self.app.run(host=self.host, port=self.port, debug=self.debug)


def create_app(**kwargs) -> Flask:
    """Create Flask app."""
    return HTTPServer(**kwargs).app


if __name__ == '__main__':
    HTTPServer(port=int(os.getenv('PORT', '3001'))).run()
