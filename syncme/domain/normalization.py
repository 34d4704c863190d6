from __future__ import annotations

import re

from .entities import LocalTrack, RemoteTrack


_QUOTE_PATTERN = re.compile(r'["“”]')
_MULTISPACE_PATTERN = re.compile(r"\s+")


def fold(value: str) -> str:
    """Case-insensitive comparison form of a metadata string."""
    return (value or "").lower()


def strings_equal(a: str, b: str) -> bool:
    return fold(a) == fold(b)


def contains(container: str, part: str) -> bool:
    """True if `part` occurs in `container`, ignoring case."""
    return fold(part) in fold(container)


def either_contains(a: str, b: str) -> bool:
    """True if either string contains the other, ignoring case."""
    fa, fb = fold(a), fold(b)
    return fa in fb or fb in fa


def track_key(name: str, artist: str) -> str:
    return f"{fold(name)}::{fold(artist)}"


def same_recording(candidate: RemoteTrack, entry: RemoteTrack) -> bool:
    """Remote identity check: equal ids, or equal name and artist ignoring case.

    Two distinct recordings sharing title and primary artist compare equal here.
    """
    if candidate.id and candidate.id == entry.id:
        return True
    return track_key(candidate.name, candidate.artist) == track_key(entry.name, entry.artist)


def query_value(value: str) -> str:
    """Make a metadata value safe to embed in a quoted search term."""
    value = _QUOTE_PATTERN.sub(" ", value or "")
    return _MULTISPACE_PATTERN.sub(" ", value).strip()


def describe(track: LocalTrack) -> str:
    return f"'{track.title}' by '{track.artist}'"
