"""Track sources: where a round's song comes from.

A source is asked for one random track for an owner (the room host) and a
song-source selector. Implementations must bound their own I/O with
``TRACK_FETCH_TIMEOUT_SEC`` and raise a ``TrackSourceError`` instead of hanging.
"""

import random
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from trackguess.models import SongSource


class TrackSourceError(Exception):
    pass


class NoCredential(TrackSourceError):
    pass


class NoTracksAvailable(TrackSourceError):
    pass


class UpstreamError(TrackSourceError):
    pass


@dataclass(frozen=True)
class TrackDescriptor:
    track_id: str
    title: str
    artist: str
    album_art: str = ''
    duration_ms: int = 0
    preview_url: Optional[str] = None


class TrackSource:
    def has_credential(self, owner_id: str) -> bool:
        raise NotImplementedError

    def fetch_track(self, owner_id: str, source: str, source_id: Optional[str] = None) -> TrackDescriptor:
        raise NotImplementedError


class StaticTrackSource(TrackSource):
    """In-memory catalogue, used for local play without a streaming account and in tests.

    ``owners`` restricts which identities count as having a credential; ``None``
    lets everyone host. ``playlists`` maps playlist ids to their own track lists.
    """

    def __init__(self, tracks: Sequence[TrackDescriptor], owners: Optional[Iterable[str]] = None,
                 playlists: Optional[dict] = None, rng: Optional[random.Random] = None):
        self.tracks = list(tracks)
        self.owners = set(owners) if owners is not None else None
        self.playlists = dict(playlists or {})
        self._rng = rng or random.Random()

    def has_credential(self, owner_id):
        return self.owners is None or owner_id in self.owners

    def fetch_track(self, owner_id, source, source_id=None):
        if not self.has_credential(owner_id):
            raise NoCredential(f'{owner_id} has no linked account')
        if source == SongSource.PLAYLIST:
            pool = self.playlists.get(source_id, [])
        else:
            pool = self.tracks
        if not pool:
            raise NoTracksAvailable(f'No tracks for source {source}')
        return self._rng.choice(pool)


DEMO_TRACKS = [
    TrackDescriptor('demo-1', 'Halo', 'Beyoncé', duration_ms=261000),
    TrackDescriptor('demo-2', 'Hey Jude', 'The Beatles', duration_ms=431000),
    TrackDescriptor('demo-3', 'Bohemian Rhapsody', 'Queen', duration_ms=354000),
    TrackDescriptor('demo-4', 'Rolling in the Deep', 'Adele', duration_ms=228000),
    TrackDescriptor('demo-5', 'Dancing Queen', 'ABBA', duration_ms=231000),
]


def build_track_source(app) -> TrackSource:
    kind = app.config.get('TRACK_SOURCE', 'spotify')
    if kind == 'static':
        app.logger.info('[track-source] using built-in demo catalogue')
        return StaticTrackSource(DEMO_TRACKS)
    if kind == 'spotify':
        from .spotify import SpotifyTrackSource
        return SpotifyTrackSource(
            client_id=app.config.get('SPOTIFY_CLIENT_ID', ''),
            client_secret=app.config.get('SPOTIFY_CLIENT_SECRET', ''),
            timeout=float(app.config.get('TRACK_FETCH_TIMEOUT_SEC', 10)),
        )
    raise ValueError(f'Unknown TRACK_SOURCE {kind!r}')
