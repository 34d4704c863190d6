from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .entities import Playlist, RemoteTrack


class CredentialProvider(Protocol):
    """Source of the bearer token used for every remote call.

    The token lifecycle (login, refresh) belongs to the provider's owner; the
    engine only reads it.
    """

    def get_access_token(self) -> Optional[str]:
        """Return the current access token, or None if absent or expired."""


class CatalogClient(Protocol):
    """Port defining the remote playlist service as seen by the reconciliation engine."""

    def list_playlist_tracks(self, playlist_id: str) -> List[RemoteTrack]:
        """Return the complete current membership of the playlist in server order."""

    def search_tracks(self, query: str, limit: int) -> List[RemoteTrack]:
        """Return at most `limit` tracks ordered by remote relevance."""

    def list_playlists(self) -> List[Playlist]:
        """Return the authenticated user's playlists."""

    def create_playlist(self, name: str, description: str = "", public: bool = False) -> Playlist:
        """Create an empty playlist owned by the authenticated user."""

    def add_items(self, playlist_id: str, uris: Sequence[str]) -> None:
        """Append up to the service's per-call limit of track URIs."""

    def remove_items(self, playlist_id: str, uris: Sequence[str]) -> None:
        """Remove up to the service's per-call limit of track URIs."""
