from dataclasses import dataclass, field
from typing import FrozenSet

from flask import current_app

from trackguess.models import RoomStatus
from .errors import InactiveRound, NotAMember, RoomNotFound, ValidationError
from .matching import DEFAULT_MATCH_THRESHOLD, matches
from .scoring import ARTIST, FIELDS, TITLE, PointTable
from .store import RoomStore


@dataclass(frozen=True)
class GuessResult:
    correct: bool = False
    fields_claimed: FrozenSet[str] = field(default_factory=frozenset)
    points_awarded: int = 0
    round_number: int = 0
    score: int = 0

    def to_dict(self):
        return {
            'correct': self.correct,
            'fields': sorted(self.fields_claimed),
            'points': self.points_awarded,
            'round_number': self.round_number,
            'score': self.score,
        }


class GuessResolver:
    """Decides what a single guess earns.

    Field claims and the score increment are conditional updates committed in
    one transaction, so two guesses racing for the same field produce exactly
    one claimant no matter how their requests interleave.
    """

    def __init__(self, store: RoomStore, points: PointTable = None,
                 threshold: float = DEFAULT_MATCH_THRESHOLD, max_length: int = 200):
        self.store = store
        self.points = points or PointTable()
        self.threshold = threshold
        self.max_length = max_length

    def resolve(self, room_code: str, player_id: str, text: str) -> GuessResult:
        room = self.store.get_room(room_code)
        if room is None:
            raise RoomNotFound()
        if room.status != RoomStatus.PLAYING or not room.has_track:
            raise InactiveRound()
        if self.store.get_player(room_code, player_id) is None:
            raise NotAMember()

        round_number = room.current_round
        if not text or not text.strip():
            return GuessResult(round_number=round_number)
        if len(text) > self.max_length:
            raise ValidationError(f'Guess must be at most {self.max_length} characters')

        targets = {ARTIST: room.track_artist, TITLE: room.track_title}
        already_claimed = {ARTIST: room.artist_guessed_by, TITLE: room.title_guessed_by}
        matched = [f for f in FIELDS if not already_claimed[f] and matches(text, targets[f], self.threshold)]
        if not matched:
            return GuessResult(round_number=round_number)

        try:
            claimed = [f for f in matched if self.store.claim_field(room_code, round_number, f, player_id)]
            points = self.points.points_for(claimed)
            score = 0
            if points > 0:
                score = self.store.increment_score(room_code, player_id, points) or 0
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise

        if claimed:
            current_app.logger.info(
                f"[guess-claim] room={room_code} round={round_number} player={player_id} "
                f"fields={','.join(claimed)} points={points}"
            )
        return GuessResult(
            correct=bool(claimed),
            fields_claimed=frozenset(claimed),
            points_awarded=points,
            round_number=round_number,
            score=score,
        )
