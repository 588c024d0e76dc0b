"""Room and player record access.

Every mutation that can race another request is a single conditional
``UPDATE`` whose row count says whether it applied; nothing is
read-modified-written in Python memory.
"""

import secrets
import time
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from trackguess import db
from trackguess.models import Room, RoomPlayer, RoomStatus
from .errors import RoomNotFound
from .scoring import ARTIST, TITLE

_CLAIM_SLOTS = {
    ARTIST: Room.artist_guessed_by,
    TITLE: Room.title_guessed_by,
}


def generate_room_code() -> str:
    """Generate a unique, unguessable room code."""
    while True:
        code = secrets.token_hex(6)
        if not Room.query.filter_by(code=code).first():
            return code


class RoomStore:
    def commit(self):
        db.session.commit()

    def rollback(self):
        db.session.rollback()

    # ---- reads (always refreshed from the database) ----

    def get_room(self, code) -> Optional[Room]:
        if not code:
            return None
        return Room.query.filter_by(code=code).populate_existing().first()

    def require_room(self, code) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound()
        return room

    def get_player(self, code, player_id) -> Optional[RoomPlayer]:
        return (
            RoomPlayer.query.filter_by(room_code=code, player_id=player_id)
            .populate_existing()
            .first()
        )

    def members(self, code) -> List[RoomPlayer]:
        return (
            RoomPlayer.query.filter_by(room_code=code)
            .order_by(RoomPlayer.joined_at, RoomPlayer.id)
            .populate_existing()
            .all()
        )

    def count_members(self, code) -> int:
        return RoomPlayer.query.filter_by(room_code=code).count()

    def active_room_for_host(self, host_id) -> Optional[Room]:
        return Room.query.filter(Room.host_id == host_id, Room.status.in_(RoomStatus.ACTIVE)).first()

    # ---- writes ----

    def create_room(self, host_id, settings) -> Room:
        room = Room(
            code=generate_room_code(),
            host_id=host_id,
            max_players=settings.max_players,
            total_rounds=settings.total_rounds,
            round_duration=settings.round_duration,
            song_source=settings.song_source,
            song_source_id=settings.song_source_id,
            status=RoomStatus.WAITING,
            current_round=0,
        )
        db.session.add(room)
        db.session.commit()
        return room

    def add_player(self, code, player_id, display_name, avatar=None, source_linked=False) -> Tuple[RoomPlayer, bool]:
        """Insert a membership row; returns (player, created).

        The unique (room_code, player_id) constraint makes a concurrent
        duplicate insert fall back to the existing row.
        """
        now = time.time()
        player = RoomPlayer(
            room_code=code,
            player_id=player_id,
            display_name=display_name,
            avatar=avatar,
            source_linked=source_linked,
            connected=True,
            joined_at=now,
            last_activity_at=now,
        )
        db.session.add(player)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return self.get_player(code, player_id), False
        return player, True

    def refresh_player(self, code, player_id, display_name=None, avatar=None) -> bool:
        patch = {RoomPlayer.connected: True, RoomPlayer.last_activity_at: time.time()}
        if display_name:
            patch[RoomPlayer.display_name] = display_name
        if avatar is not None:
            patch[RoomPlayer.avatar] = avatar
        updated = (
            RoomPlayer.query.filter_by(room_code=code, player_id=player_id)
            .update(patch, synchronize_session=False)
        )
        db.session.commit()
        return updated == 1

    def set_connected(self, code, player_id, connected) -> bool:
        updated = (
            RoomPlayer.query.filter_by(room_code=code, player_id=player_id)
            .update({RoomPlayer.connected: connected, RoomPlayer.last_activity_at: time.time()},
                    synchronize_session=False)
        )
        db.session.commit()
        return updated == 1

    def remove_player(self, code, player_id) -> bool:
        deleted = (
            RoomPlayer.query.filter_by(room_code=code, player_id=player_id)
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return deleted == 1

    def detach_players(self, code) -> int:
        deleted = RoomPlayer.query.filter_by(room_code=code).delete(synchronize_session=False)
        db.session.commit()
        return deleted

    def update_room_if(self, code, expected: dict, patch: dict) -> bool:
        """Apply ``patch`` only if every ``expected`` column still holds its value.

        A tuple/list/set value means "any of"; ``None`` means "is NULL".
        Returns True when exactly this call changed the row.
        """
        query = Room.query.filter(Room.code == code)
        for column, value in expected.items():
            attr = getattr(Room, column)
            if value is None:
                query = query.filter(attr.is_(None))
            elif isinstance(value, (tuple, list, set, frozenset)):
                query = query.filter(attr.in_(list(value)))
            else:
                query = query.filter(attr == value)
        values = {getattr(Room, column): value for column, value in patch.items()}
        values[Room.updated_at] = time.time()
        updated = query.update(values, synchronize_session=False)
        db.session.commit()
        return updated == 1

    # ---- guess primitives; caller commits so claims and score land together ----

    def claim_field(self, code, round_number, field, player_id) -> bool:
        """Set the field's claimant only if nobody holds it for this live round."""
        slot = _CLAIM_SLOTS[field]
        updated = (
            Room.query.filter(
                Room.code == code,
                Room.status == RoomStatus.PLAYING,
                Room.current_round == round_number,
                slot.is_(None),
            )
            .update({slot: player_id}, synchronize_session=False)
        )
        return updated == 1

    def increment_score(self, code, player_id, delta) -> Optional[int]:
        if delta <= 0:
            raise ValueError('score increments must be positive')
        updated = (
            RoomPlayer.query.filter_by(room_code=code, player_id=player_id)
            .update(
                {
                    RoomPlayer.score: RoomPlayer.score + delta,
                    RoomPlayer.last_activity_at: time.time(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            return None
        return (
            db.session.query(RoomPlayer.score)
            .filter_by(room_code=code, player_id=player_id)
            .scalar()
        )
