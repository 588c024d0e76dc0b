from dataclasses import dataclass
from typing import Optional

from trackguess.models import SongSource
from .errors import ValidationError

MIN_ROUNDS, MAX_ROUNDS = 1, 20
MIN_ROUND_DURATION, MAX_ROUND_DURATION = 10, 60
MIN_PLAYERS, MAX_PLAYERS = 2, 10
DEFAULT_ROUND_DURATION = 30
DEFAULT_MAX_PLAYERS = 10


def _int_in_range(data, key, low, high, default=None):
    raw = data.get(key, default)
    if raw is None:
        raise ValidationError(f'{key} is required')
    if isinstance(raw, bool):
        raise ValidationError(f'{key} must be an integer')
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be an integer')
    if value != raw and not isinstance(raw, str):
        raise ValidationError(f'{key} must be an integer')
    if not low <= value <= high:
        raise ValidationError(f'{key} must be between {low} and {high}')
    return value


@dataclass(frozen=True)
class RoomSettings:
    total_rounds: int
    song_source: str
    round_duration: int = DEFAULT_ROUND_DURATION
    max_players: int = DEFAULT_MAX_PLAYERS
    song_source_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data) -> 'RoomSettings':
        """Validate client-supplied room settings, raising ``ValidationError``."""
        data = data or {}
        total_rounds = _int_in_range(data, 'total_rounds', MIN_ROUNDS, MAX_ROUNDS)
        round_duration = _int_in_range(
            data, 'round_duration', MIN_ROUND_DURATION, MAX_ROUND_DURATION, DEFAULT_ROUND_DURATION
        )
        max_players = _int_in_range(data, 'max_players', MIN_PLAYERS, MAX_PLAYERS, DEFAULT_MAX_PLAYERS)

        song_source = data.get('song_source')
        if song_source not in SongSource.ALL:
            raise ValidationError(f"song_source must be one of {', '.join(SongSource.ALL)}")
        song_source_id = (data.get('song_source_id') or '').strip() or None
        if song_source == SongSource.PLAYLIST and not song_source_id:
            raise ValidationError('Playlist ID required')

        return cls(
            total_rounds=total_rounds,
            song_source=song_source,
            round_duration=round_duration,
            max_players=max_players,
            song_source_id=song_source_id,
        )
