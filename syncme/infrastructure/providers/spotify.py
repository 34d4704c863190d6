import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from urllib3.exceptions import ReadTimeoutError

from syncme.domain.entities import Playlist, RemoteTrack
from syncme.domain.errors import NotFound, RateLimited, RemoteUnavailable, Unauthenticated
from syncme.domain.ports import CatalogClient, CredentialProvider

logger = logging.getLogger(__name__)

# Page and batch sizes accepted by the Spotify Web API
TRACKS_PAGE_LIMIT = 100
PLAYLISTS_PAGE_LIMIT = 50
SEARCH_LIMIT_MAX = 50
MAX_ITEMS_PER_CALL = 100

TRACK_FIELDS = 'items(track(id,name,uri,type,popularity,artists(name),album(name))),next'


class SpotifyCatalogClient(CatalogClient):
    """Spotify Web API adapter for the reconciliation engine."""

    def __init__(self,
                 credentials: CredentialProvider,
                 market: Optional[str] = None,
                 request_timeout: int = 15):
        """Initialize Spotify catalog client.

        Args:
            credentials: Provider of the bearer token, read before every call
            market: Optional market code applied to searches (e.g. US)
            request_timeout: HTTP timeout in seconds
        """
        self.credentials = credentials
        self.market = market
        self.request_timeout = request_timeout
        self._client = None
        self._token = None

    def _spotify(self) -> spotipy.Spotify:
        """Return a spotipy client bound to the current token."""
        token = self.credentials.get_access_token()
        if not token:
            raise Unauthenticated("No Spotify access token available; log in first")

        if self._client is None or token != self._token:
            self._client = spotipy.Spotify(auth=token, requests_timeout=self.request_timeout)
            self._token = token
        return self._client

    def _call(self, operation: str, method: str, *args, **kwargs) -> Any:
        """Invoke a spotipy method, translating failures into domain errors."""
        client = self._spotify()
        try:
            return getattr(client, method)(*args, **kwargs)
        except SpotifyException as e:
            raise self._translate_error(e, operation) from e
        except (requests.exceptions.RequestException, ReadTimeoutError) as e:
            logger.warning(f"Transport error during {operation}: {e}")
            raise RemoteUnavailable(f"{operation} failed: {e}") from e

    @staticmethod
    def _translate_error(error: SpotifyException, operation: str) -> Exception:
        status = getattr(error, 'http_status', None)
        message = f"{operation} failed ({status}): {getattr(error, 'msg', error)}"

        if status == 401:
            logger.error(f"Spotify rejected the access token during {operation}")
            return Unauthenticated(message)
        if status == 404:
            return NotFound(message)
        if status == 429:
            headers = getattr(error, 'headers', None) or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                retry_after = 1
            logger.warning(f"Rate limited during {operation}, retry after {retry_after}s")
            return RateLimited(retry_after_ms=retry_after * 1000, message=message)

        logger.warning(message)
        return RemoteUnavailable(message)

    @staticmethod
    def _to_remote_track(spotify_track: Optional[Dict[str, Any]]) -> Optional[RemoteTrack]:
        """Convert a Spotify track object; episodes, local files and removed tracks yield None."""
        if not spotify_track or not spotify_track.get('id'):
            return None
        if spotify_track.get('type', 'track') != 'track':
            return None

        artists = spotify_track.get('artists') or []
        album = spotify_track.get('album') or {}
        track_id = spotify_track['id']

        return RemoteTrack(
            id=track_id,
            name=spotify_track.get('name') or '',
            artist=(artists[0].get('name') or '') if artists else '',
            album=album.get('name') or '',
            uri=spotify_track.get('uri') or f"spotify:track:{track_id}",
            popularity=spotify_track.get('popularity') or 0,
        )

    @staticmethod
    def _to_playlist(item: Dict[str, Any]) -> Playlist:
        return Playlist(
            id=item['id'],
            name=item.get('name') or '',
            owner_id=(item.get('owner') or {}).get('id', ''),
            track_count=(item.get('tracks') or {}).get('total', 0),
            url=(item.get('external_urls') or {}).get('spotify'),
        )

    def list_playlist_tracks(self, playlist_id: str) -> List[RemoteTrack]:
        """List every track of a playlist, following pagination until the last page.

        Args:
            playlist_id: Spotify playlist ID

        Returns:
            Tracks in playlist order
        """
        tracks: List[RemoteTrack] = []
        offset = 0

        while True:
            page = self._call(
                'list playlist tracks', 'playlist_items', playlist_id,
                fields=TRACK_FIELDS, limit=TRACKS_PAGE_LIMIT, offset=offset,
                additional_types=('track',)
            )
            items = (page or {}).get('items') or []

            for item in items:
                track = self._to_remote_track((item or {}).get('track'))
                if track:
                    tracks.append(track)

            if not items or not page.get('next'):
                break
            offset += len(items)

        logger.debug(f"Fetched {len(tracks)} tracks from playlist {playlist_id}")
        return tracks

    def search_tracks(self, query: str, limit: int) -> List[RemoteTrack]:
        """Search the catalog for tracks.

        Args:
            query: Search query, optionally using field filters like track:"..."
            limit: Maximum number of results

        Returns:
            Tracks in relevance order
        """
        limit = max(1, min(int(limit), SEARCH_LIMIT_MAX))
        logger.debug(f"Searching: {query} (market={self.market}, limit={limit})")

        results = self._call('search', 'search', q=query, limit=limit, type='track', market=self.market)
        items = ((results or {}).get('tracks') or {}).get('items') or []

        tracks = []
        for item in items:
            track = self._to_remote_track(item)
            if track:
                tracks.append(track)
        return tracks[:limit]

    def list_playlists(self) -> List[Playlist]:
        """List playlists of the current user.

        Returns:
            Playlists in the order Spotify returns them
        """
        playlists: List[Playlist] = []
        offset = 0

        while True:
            page = self._call('list playlists', 'current_user_playlists',
                              limit=PLAYLISTS_PAGE_LIMIT, offset=offset)
            items = (page or {}).get('items') or []
            playlists.extend(self._to_playlist(item) for item in items if item and item.get('id'))

            if not items or not page.get('next'):
                break
            offset += len(items)

        return playlists

    def create_playlist(self, name: str, description: str = "", public: bool = False) -> Playlist:
        """Create a playlist owned by the current user."""
        user = self._call('get current user', 'current_user')
        result = self._call('create playlist', 'user_playlist_create', user['id'], name,
                            public=public, description=description)
        return self._to_playlist(result)

    def add_items(self, playlist_id: str, uris: Sequence[str]) -> None:
        """Append at most MAX_ITEMS_PER_CALL track URIs to a playlist."""
        self._check_batch(uris)
        self._call('add tracks', 'playlist_add_items', playlist_id, list(uris))

    def remove_items(self, playlist_id: str, uris: Sequence[str]) -> None:
        """Remove every occurrence of at most MAX_ITEMS_PER_CALL track URIs from a playlist."""
        self._check_batch(uris)
        self._call('remove tracks', 'playlist_remove_all_occurrences_of_items', playlist_id, list(uris))

    @staticmethod
    def _check_batch(uris: Sequence[str]) -> None:
        if len(uris) > MAX_ITEMS_PER_CALL:
            raise ValueError(f"At most {MAX_ITEMS_PER_CALL} items per call, got {len(uris)}")
