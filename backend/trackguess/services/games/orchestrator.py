"""Room state machine.

    waiting -> playing -> round_end -> playing (rounds remain) | game_end
    any state except closed -> closed (host leaves or closes)

Each public operation re-reads the room, checks its preconditions, and applies
its transition as a compare-and-set on (status, current_round) so that the
HTTP fallback, the socket handlers and the round timers can all drive the
same room without producing duplicate transitions or events.
"""

import functools
import time
from functools import partial

from flask import current_app

from trackguess.models import RoomStatus
from .errors import (
    AlreadyStarted,
    Forbidden,
    GameResult,
    GameRuleError,
    HostHasActiveRoom,
    NoPlayers,
    NotAMember,
    PrerequisiteNotMet,
    RoomFull,
    RoomNotActive,
    RoomNotJoinable,
    RoundInProgress,
    RoundNotEnded,
    RoundsExhausted,
    StateChanged,
    TrackUnavailable,
    ValidationError,
)
from .events import RoomEvents
from .resolver import GuessResolver
from .rules import RoomSettings
from .scheduler import RoundScheduler
from .scoring import PointTable, leaderboard
from .store import RoomStore
from .track_source import TrackSourceError


def _outcome(fn):
    """Turn rule violations raised by ``fn`` into a rejected ``GameResult``."""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return GameResult.ok(fn(self, *args, **kwargs))
        except GameRuleError as exc:
            current_app.logger.info(f"[rejected] op={fn.__name__} code={exc.code} args={args}")
            return GameResult.rejected(exc)

    return wrapper


def get_orchestrator() -> 'GameOrchestrator':
    return current_app.extensions['trackguess']


class GameOrchestrator:
    def __init__(self, store: RoomStore, resolver: GuessResolver, scheduler: RoundScheduler,
                 track_source, events: RoomEvents, reveal_delay: float = 3,
                 game_end_delay: float = 5, leaderboard_size: int = 10):
        self.store = store
        self.resolver = resolver
        self.scheduler = scheduler
        self.track_source = track_source
        self.events = events
        self.reveal_delay = reveal_delay
        self.game_end_delay = game_end_delay
        self.leaderboard_size = leaderboard_size

    @classmethod
    def from_app(cls, app, socketio, track_source):
        cfg = app.config
        store = RoomStore()
        resolver = GuessResolver(
            store,
            points=PointTable.from_config(cfg),
            threshold=float(cfg.get('MATCH_THRESHOLD', 0.70)),
            max_length=int(cfg.get('MAX_GUESS_LENGTH', 200)),
        )
        return cls(
            store=store,
            resolver=resolver,
            scheduler=RoundScheduler(app, socketio),
            track_source=track_source,
            events=RoomEvents(socketio),
            reveal_delay=float(cfg.get('REVEAL_DELAY_SEC', 3)),
            game_end_delay=float(cfg.get('GAME_END_DELAY_SEC', 5)),
            leaderboard_size=int(cfg.get('LEADERBOARD_SIZE', 10)),
        )

    # ---- lobby ----

    @_outcome
    def create_room(self, host_id, settings, display_name=None, avatar=None):
        if not host_id:
            raise ValidationError('host_id is required')
        if not isinstance(settings, RoomSettings):
            settings = RoomSettings.from_payload(settings)
        if not self.track_source.has_credential(host_id):
            raise PrerequisiteNotMet()
        existing = self.store.active_room_for_host(host_id)
        if existing is not None:
            raise HostHasActiveRoom(f'Host already has an active room ({existing.code})')

        room = self.store.create_room(host_id, settings)
        self.store.add_player(room.code, host_id, display_name or 'Host', avatar, source_linked=True)
        current_app.logger.info(
            f"[room-create] room={room.code} host={host_id} rounds={settings.total_rounds} "
            f"duration={settings.round_duration}s source={settings.song_source}"
        )
        return self._state(room.code)

    @_outcome
    def join_room(self, room_code, player_id, display_name=None, avatar=None):
        if not player_id:
            raise ValidationError('player_id is required')
        room = self.store.require_room(room_code)

        if self.store.get_player(room_code, player_id) is not None:
            # Reconnect: keep score and join order
            self.store.refresh_player(room_code, player_id, display_name, avatar)
        else:
            if room.status != RoomStatus.WAITING:
                raise RoomNotJoinable()
            if self.store.count_members(room_code) >= room.max_players:
                raise RoomFull()
            _, created = self.store.add_player(
                room_code,
                player_id,
                display_name or 'Player',
                avatar,
                source_linked=self.track_source.has_credential(player_id),
            )
            # Two joins can pass the count check together; only rows seated past capacity back out
            if created and self._seat_of(room_code, player_id) >= room.max_players:
                self.store.remove_player(room_code, player_id)
                raise RoomFull()

        player = self.store.get_player(room_code, player_id)
        current_app.logger.info(f"[room-join] room={room_code} player={player_id}")
        self.events.player_joined(room_code, player, self._board(room_code))
        return self._state(room_code)

    @_outcome
    def leave_room(self, room_code, player_id):
        room = self.store.require_room(room_code)
        if player_id == room.host_id:
            return self._close(room)
        if not self.store.remove_player(room_code, player_id):
            raise NotAMember()
        current_app.logger.info(f"[room-leave] room={room_code} player={player_id}")
        self.events.player_left(room_code, player_id, self._board(room_code))
        return self._state(room_code)

    @_outcome
    def disconnect(self, room_code, player_id):
        """Socket went away: keep the membership so the player can reconnect."""
        if self.store.get_room(room_code) is None:
            return None
        if self.store.set_connected(room_code, player_id, False):
            self.events.player_left(room_code, player_id, self._board(room_code))
        return None

    @_outcome
    def close_room(self, room_code, requester_id):
        room = self.store.require_room(room_code)
        if requester_id != room.host_id:
            raise Forbidden('Only the host can close the room')
        return self._close(room)

    # ---- game flow ----

    @_outcome
    def start_game(self, room_code, requester_id):
        room = self.store.require_room(room_code)
        if requester_id != room.host_id:
            raise Forbidden('Only host can start the game')
        if room.status != RoomStatus.WAITING:
            raise AlreadyStarted()
        if self.store.count_members(room_code) < 1:
            raise NoPlayers()
        self._start_round(room_code, announce_game=True)
        return self._state(room_code)

    @_outcome
    def start_round(self, room_code):
        self._start_round(room_code)
        return self._state(room_code)

    @_outcome
    def submit_guess(self, room_code, player_id, text):
        result = self.resolver.resolve(room_code, player_id, text)
        if not result.correct:
            return result

        player = self.store.get_player(room_code, player_id)
        self.events.correct_guess(room_code, player, result)
        self.events.leaderboard_update(room_code, self._board(room_code))

        room = self.store.get_room(room_code)
        if (
            room is not None
            and room.status == RoomStatus.PLAYING
            and room.current_round == result.round_number
            and room.artist_guessed_by
            and room.title_guessed_by
        ):
            # Give clients time to show the correct-guess banner before the reveal
            self.scheduler.schedule_early_end(
                room_code,
                self.reveal_delay,
                partial(self._round_timer_fired, room_code, result.round_number),
                round_number=result.round_number,
            )
        return result

    @_outcome
    def end_round(self, room_code, expected_round=None):
        """Close the live round; a no-op unless it is still playing."""
        room = self.store.require_room(room_code)
        if room.status != RoomStatus.PLAYING or (
            expected_round is not None and room.current_round != expected_round
        ):
            current_app.logger.info(
                f"[round-end-skip] room={room_code} status={room.status} round={room.current_round} expected={expected_round}"
            )
            return None

        ended_round = room.current_round
        won = self.store.update_room_if(
            room_code,
            {'status': RoomStatus.PLAYING, 'current_round': ended_round},
            {'status': RoomStatus.ROUND_END, 'round_deadline': None},
        )
        if not won:
            current_app.logger.info(f"[round-end-skip] room={room_code} lost transition race")
            return None

        # Leave alone a timer that already belongs to a newer round
        self.scheduler.cancel(room_code, round_number=ended_round)
        room = self.store.require_room(room_code)
        if room.current_round != ended_round:
            # The host already moved on; that round has announced itself
            current_app.logger.info(
                f"[round-end-skip] room={room_code} round={ended_round} superseded by round={room.current_round}"
            )
            return room.to_dict()
        current_app.logger.info(
            f"[round-end] room={room_code} round={room.current_round}/{room.total_rounds} "
            f"artist_by={room.artist_guessed_by} title_by={room.title_guessed_by}"
        )
        self.events.round_ended(room)
        self.events.leaderboard_update(room_code, self._board(room_code))

        if ended_round >= room.total_rounds:
            self.scheduler.schedule_game_end(
                room_code, self.game_end_delay, partial(self._game_end_timer_fired, room_code)
            )
        return room.to_dict()

    @_outcome
    def next_round(self, room_code, requester_id):
        room = self.store.require_room(room_code)
        if requester_id != room.host_id:
            raise Forbidden('Only host can start next round')
        if room.status != RoomStatus.ROUND_END:
            raise RoundNotEnded()
        if room.current_round < room.total_rounds:
            self._start_round(room_code)
        else:
            self._end_game(room_code)
        return self._state(room_code)

    @_outcome
    def end_game(self, room_code):
        return self._end_game(room_code)

    # ---- queries ----

    @_outcome
    def room_state(self, room_code, viewer=None):
        """Snapshot for polling clients; the answer stays hidden while a round is live."""
        self.store.require_room(room_code)
        state = self._state(room_code)
        if viewer:
            me = self.store.get_player(room_code, viewer)
            state['me'] = me.to_dict() if me is not None else None
            state['is_host'] = viewer == state['host_id']
        return state

    @_outcome
    def leaderboard(self, room_code):
        self.store.require_room(room_code)
        return self._board(room_code)

    # ---- internals ----

    def _start_round(self, room_code, announce_game=False):
        room = self.store.require_room(room_code)
        if room.current_round >= room.total_rounds:
            raise RoundsExhausted()
        if room.status == RoomStatus.PLAYING:
            raise RoundInProgress()
        if room.status not in (RoomStatus.WAITING, RoomStatus.ROUND_END):
            raise RoomNotActive()

        expected = {'status': room.status, 'current_round': room.current_round}
        track = self._fetch_track(room)

        now = time.time()
        next_round = room.current_round + 1
        won = self.store.update_room_if(room_code, expected, {
            'status': RoomStatus.PLAYING,
            'current_round': next_round,
            'track_id': track.track_id,
            'track_title': track.title,
            'track_artist': track.artist,
            'track_album_art': track.album_art,
            'track_duration_ms': track.duration_ms,
            'track_preview_url': track.preview_url,
            'round_started_at': now,
            'round_deadline': now + room.round_duration,
            'artist_guessed_by': None,
            'title_guessed_by': None,
        })
        if not won:
            raise StateChanged()

        room = self.store.require_room(room_code)
        self.scheduler.schedule_round_end(
            room_code,
            room.round_duration,
            partial(self._round_timer_fired, room_code, next_round),
            round_number=next_round,
        )
        current_app.logger.info(
            f"[round-start] room={room_code} round={next_round}/{room.total_rounds} track={track.track_id}"
        )
        if announce_game:
            self.events.game_started(room)
        self.events.round_started(room)
        return room

    def _fetch_track(self, room):
        try:
            return self.track_source.fetch_track(room.host_id, room.song_source, room.song_source_id)
        except TrackSourceError as exc:
            current_app.logger.warning(
                f"[track-unavailable] room={room.code} source={room.song_source} "
                f"error={exc.__class__.__name__}: {exc}"
            )
            raise TrackUnavailable() from exc

    def _end_game(self, room_code):
        room = self.store.require_room(room_code)
        if room.status == RoomStatus.GAME_END:
            return self._final_board(room_code)
        if room.status not in (RoomStatus.PLAYING, RoomStatus.ROUND_END):
            raise RoomNotActive()

        won = self.store.update_room_if(
            room_code,
            {'status': (RoomStatus.PLAYING, RoomStatus.ROUND_END)},
            {'status': RoomStatus.GAME_END, 'round_deadline': None},
        )
        if not won:
            if self.store.require_room(room_code).status == RoomStatus.GAME_END:
                return self._final_board(room_code)
            raise StateChanged()

        self.scheduler.cancel(room_code)
        board = self._final_board(room_code)
        current_app.logger.info(f"[game-end] room={room_code} winner={board[0]['player_id'] if board else None}")
        self.events.game_ended(room_code, board)
        return board

    def _close(self, room):
        self.scheduler.cancel(room.code)
        if room.status == RoomStatus.CLOSED:
            return self._state(room.code)

        open_states = [s for s in RoomStatus.ALL if s != RoomStatus.CLOSED]
        won = self.store.update_room_if(
            room.code, {'status': open_states}, {'status': RoomStatus.CLOSED, 'round_deadline': None}
        )
        if not won:
            return self._state(room.code)

        # A round may have been scheduled between the first cancel and the transition
        self.scheduler.cancel(room.code)
        detached = self.store.detach_players(room.code)
        current_app.logger.info(f"[room-close] room={room.code} detached={detached}")
        self.events.room_closed(room.code)
        return self._state(room.code)

    def _round_timer_fired(self, room_code, round_number):
        self.end_round(room_code, expected_round=round_number)

    def _game_end_timer_fired(self, room_code):
        self.end_game(room_code)

    def _seat_of(self, room_code, player_id):
        """Position of the player in join order (0-based), or -1 when absent."""
        for seat, member in enumerate(self.store.members(room_code)):
            if member.player_id == player_id:
                return seat
        return -1

    def _board(self, room_code):
        return leaderboard(self.store.members(room_code))

    def _final_board(self, room_code):
        return leaderboard(self.store.members(room_code), limit=self.leaderboard_size)

    def _state(self, room_code):
        room = self.store.require_room(room_code)
        state = room.to_dict()
        state['players'] = self._board(room_code)
        return state
