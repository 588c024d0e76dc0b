"""Spotify Web API track source.

Reads the host's stored Spotify tokens from ``User``, refreshes the access
token when it is about to expire, and picks a random track from liked songs,
a playlist, or the host's top tracks.
"""

import random
import time
from typing import Callable, Optional

import httpx
from flask import current_app

from trackguess import db
from trackguess.models import SongSource, User
from .track_source import NoCredential, NoTracksAvailable, TrackDescriptor, TrackSource, UpstreamError

API_BASE = 'https://api.spotify.com/v1'
TOKEN_URL = 'https://accounts.spotify.com/api/token'
# Refresh when the access token expires within this many seconds
REFRESH_MARGIN_SEC = 5 * 60


class SpotifyTrackSource(TrackSource):
    def __init__(self, client_id: str, client_secret: str = '', timeout: float = 10.0,
                 client: Optional[httpx.Client] = None, rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.client_id = client_id
        self.client_secret = client_secret
        # Budget for a whole fetch_track call, shared by every request it makes
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._rng = rng or random.Random()
        self._clock = clock

    def has_credential(self, owner_id):
        user = db.session.get(User, owner_id)
        return bool(user and user.spotify_connected)

    def fetch_track(self, owner_id, source, source_id=None):
        deadline = self._clock() + self.timeout
        token = self._access_token(owner_id, deadline)
        if source == SongSource.LIKED_SONGS:
            raw = self._random_liked_track(token, deadline)
        elif source == SongSource.PLAYLIST:
            if not source_id:
                raise NoTracksAvailable('Playlist ID required')
            raw = self._random_playlist_track(token, source_id, deadline)
        elif source == SongSource.TOP_TRACKS:
            raw = self._random_top_track(token, deadline)
        else:
            raise NoTracksAvailable(f'Unsupported song source {source}')
        try:
            return format_track(raw)
        except (KeyError, TypeError) as exc:
            raise UpstreamError('Malformed track payload') from exc

    def _remaining(self, deadline):
        left = deadline - self._clock()
        if left <= 0:
            raise UpstreamError(f"Track fetch exceeded {self.timeout}s")
        return left

    def _access_token(self, owner_id, deadline):
        user = db.session.get(User, owner_id)
        if not user or not user.spotify_connected:
            raise NoCredential(f'{owner_id} has not connected Spotify')

        now = time.time()
        if (user.spotify_expires_at or 0) - now > REFRESH_MARGIN_SEC:
            return user.spotify_access_token

        data = {
            'grant_type': 'refresh_token',
            'refresh_token': user.spotify_refresh_token,
            'client_id': self.client_id,
        }
        auth = (self.client_id, self.client_secret) if self.client_secret else None
        try:
            response = self._client.post(TOKEN_URL, data=data, auth=auth, timeout=self._remaining(deadline))
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (400, 401):
                raise NoCredential(f'Spotify refresh rejected for {owner_id}') from exc
            raise UpstreamError('Failed to refresh token') from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamError('Failed to refresh token') from exc

        user.spotify_access_token = body['access_token']
        user.spotify_expires_at = now + int(body.get('expires_in', 3600))
        if body.get('refresh_token'):
            user.spotify_refresh_token = body['refresh_token']
        db.session.add(user)
        db.session.commit()
        current_app.logger.info(f"[spotify-refresh] user={owner_id} expires_at={user.spotify_expires_at}")
        return user.spotify_access_token

    def _get(self, token, deadline, path, params=None):
        timeout = self._remaining(deadline)
        try:
            response = self._client.get(
                f'{API_BASE}{path}',
                headers={'Authorization': f'Bearer {token}'},
                params=params,
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            current_app.logger.warning(f"[spotify-error] path={path} error={exc}")
            raise UpstreamError(f'Spotify request failed: {path}') from exc

    def _random_liked_track(self, token, deadline):
        total = int(self._get(token, deadline, '/me/tracks', {'limit': 1}).get('total') or 0)
        if total == 0:
            raise NoTracksAvailable('No liked songs found')
        offset = self._rng.randrange(total)
        items = self._get(token, deadline, '/me/tracks', {'limit': 1, 'offset': offset}).get('items') or []
        if not items or not items[0].get('track'):
            raise NoTracksAvailable('No liked songs found')
        return items[0]['track']

    def _random_playlist_track(self, token, playlist_id, deadline):
        items = self._get(token, deadline, f'/playlists/{playlist_id}/tracks').get('items') or []
        tracks = [item['track'] for item in items if item.get('track')]
        if not tracks:
            raise NoTracksAvailable('No tracks found in playlist')
        return self._rng.choice(tracks)

    def _random_top_track(self, token, deadline):
        tracks = self._get(token, deadline, '/me/top/tracks', {'limit': 50, 'time_range': 'medium_term'}).get('items') or []
        if not tracks:
            raise NoTracksAvailable('No top tracks found')
        return self._rng.choice(tracks)


def format_track(track) -> TrackDescriptor:
    images = (track.get('album') or {}).get('images') or []
    return TrackDescriptor(
        track_id=track['id'],
        title=track['name'],
        artist=', '.join(a['name'] for a in track.get('artists') or []),
        album_art=images[0]['url'] if images else '',
        duration_ms=int(track.get('duration_ms') or 0),
        preview_url=track.get('preview_url'),
    )
