from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import mutagen
from mutagen import MutagenError

from syncme.domain.entities import LocalTrack
from syncme.domain.errors import InvalidInput


logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('mp3', 'm4a', 'flac', 'wav', 'aac')
UNKNOWN_ARTIST = 'Unknown Artist'
UNKNOWN_ALBUM = 'Unknown Album'

# Easy tag names first, then raw ID3 frames (WAV) and MP4 atoms
_TITLE_KEYS = ('title', 'TIT2', '\xa9nam')
_ARTIST_KEYS = ('artist', 'TPE1', '\xa9ART', 'albumartist')
_ALBUM_KEYS = ('album', 'TALB', '\xa9alb')


def _first_tag(tags, keys: Sequence[str]) -> Optional[str]:
    if not tags:
        return None
    for key in keys:
        try:
            value = tags.get(key)
        except (KeyError, ValueError):
            continue
        if value is None:
            continue
        if isinstance(value, list):
            value = value[0] if value else None
        elif hasattr(value, 'text'):
            value = value.text[0] if value.text else None
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


class LocalLibraryScanner:
    """Reads a folder of audio files into local track records."""

    def __init__(self, extensions: Sequence[str] = SUPPORTED_EXTENSIONS,
                 recursive: bool = False, ignore_hidden: bool = True):
        self.extensions = {e.lower().lstrip('.') for e in extensions}
        self.recursive = recursive
        self.ignore_hidden = ignore_hidden

    def iter_audio_files(self, root: Path) -> Iterator[Path]:
        """Yield audio files under root in a stable order."""
        for dirpath, dirnames, filenames in os.walk(root):
            if self.ignore_hidden:
                dirnames[:] = [d for d in dirnames if not d.startswith('.')]
            dirnames.sort()
            for filename in sorted(filenames):
                if self.ignore_hidden and filename.startswith('.'):
                    continue
                path = Path(dirpath) / filename
                if path.suffix.lower().lstrip('.') in self.extensions:
                    yield path
            if not self.recursive:
                break

    def scan(self, folder: str) -> List[LocalTrack]:
        """Scan a folder for audio files and read their tags.

        Raises:
            InvalidInput: If the folder path is empty or not a directory
        """
        if not folder or not str(folder).strip():
            raise InvalidInput("folder path is required")
        root = Path(folder).expanduser()
        if not root.is_dir():
            raise InvalidInput(f"Cannot access folder: {folder}")

        tracks = [self.read_track(path) for path in self.iter_audio_files(root)]
        logger.info(f"Found {len(tracks)} music files in {root}")
        return tracks

    def read_track(self, path: Path) -> LocalTrack:
        """Read one file; unreadable tags fall back to the file name."""
        title = artist = album = None
        duration = 0.0

        try:
            audio = mutagen.File(path, easy=True)
        except (MutagenError, OSError) as e:
            logger.warning(f"Could not parse metadata for {path.name}: {e}")
            audio = None

        if audio is not None:
            tags = getattr(audio, 'tags', None)
            title = _first_tag(tags, _TITLE_KEYS)
            artist = _first_tag(tags, _ARTIST_KEYS)
            album = _first_tag(tags, _ALBUM_KEYS)
            info = getattr(audio, 'info', None)
            if info is not None and getattr(info, 'length', None):
                duration = float(info.length)

        return LocalTrack(
            title=title or path.stem,
            artist=artist or UNKNOWN_ARTIST,
            album=album or UNKNOWN_ALBUM,
            duration_seconds=duration,
            source_path=str(path),
        )
