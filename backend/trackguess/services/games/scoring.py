from dataclasses import dataclass
from typing import Iterable, List, Optional

ARTIST = 'artist'
TITLE = 'title'
FIELDS = (ARTIST, TITLE)


@dataclass(frozen=True)
class PointTable:
    """Points per claimed field.

    ``both_bonus`` replaces the per-field sum when a single guess claims both
    fields. It is deliberately a separate constant so that retuning the field
    values never changes the bonus.
    """

    artist: int = 2
    title: int = 3
    both_bonus: int = 5

    @classmethod
    def from_config(cls, config) -> 'PointTable':
        return cls(
            artist=int(config.get('ARTIST_POINTS', 2)),
            title=int(config.get('TITLE_POINTS', 3)),
            both_bonus=int(config.get('BOTH_FIELDS_BONUS', 5)),
        )

    def points_for(self, fields_claimed: Iterable[str]) -> int:
        claimed = set(fields_claimed)
        if ARTIST in claimed and TITLE in claimed:
            return self.both_bonus
        total = 0
        if ARTIST in claimed:
            total += self.artist
        if TITLE in claimed:
            total += self.title
        return total


def rank_players(players, limit: Optional[int] = None) -> List:
    """Sort by score descending; ties go to whoever joined first."""
    ranked = sorted(players, key=lambda p: (-(p.score or 0), p.joined_at or 0, p.id or 0))
    if limit is not None:
        ranked = ranked[:limit]
    return ranked


def leaderboard(players, limit: Optional[int] = None) -> List[dict]:
    board = []
    for position, p in enumerate(rank_players(players, limit), start=1):
        entry = p.to_dict()
        entry['rank'] = position
        board.append(entry)
    return board
