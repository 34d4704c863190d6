from typing import Dict, List, Optional

from syncme.domain.entities import Playlist, RemoteTrack


class FakeCatalog:
    """In-memory catalog recording every call made by the engine."""

    def __init__(self,
                 snapshots: Optional[Dict[str, List[RemoteTrack]]] = None,
                 search_results: Optional[Dict[str, List[RemoteTrack]]] = None):
        self.snapshots = snapshots or {}
        self.search_results = search_results or {}
        self.search_errors: Dict[str, Exception] = {}
        self.mutation_errors: Dict[int, Exception] = {}
        self.search_calls: List[str] = []
        self.mutation_calls: List[tuple] = []
        self.list_calls: List[str] = []
        self.created: List[Playlist] = []

    def list_playlist_tracks(self, playlist_id):
        self.list_calls.append(playlist_id)
        return list(self.snapshots.get(playlist_id, []))

    def search_tracks(self, query, limit):
        self.search_calls.append(query)
        if query in self.search_errors:
            raise self.search_errors[query]
        return list(self.search_results.get(query, []))[:limit]

    def list_playlists(self):
        return [Playlist(id=pid, name=pid, track_count=len(tracks)) for pid, tracks in self.snapshots.items()]

    def create_playlist(self, name, description="", public=False):
        playlist = Playlist(id=f"pl_{len(self.created) + 1}", name=name, owner_id="user_1")
        self.created.append(playlist)
        self.snapshots[playlist.id] = []
        return playlist

    def _mutate(self, kind, playlist_id, uris):
        call_index = len(self.mutation_calls)
        self.mutation_calls.append((kind, playlist_id, list(uris)))
        if call_index in self.mutation_errors:
            raise self.mutation_errors[call_index]

    def add_items(self, playlist_id, uris):
        self._mutate("add", playlist_id, uris)

    def remove_items(self, playlist_id, uris):
        self._mutate("remove", playlist_id, uris)


def remote(track_id: str, name: str, artist: str, popularity: int = 0) -> RemoteTrack:
    return RemoteTrack(id=track_id, name=name, artist=artist, album="",
                       uri=f"spotify:track:{track_id}", popularity=popularity)