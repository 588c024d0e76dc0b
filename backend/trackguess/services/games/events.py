NAMESPACE = '/ws'

PLAYER_JOINED = 'room:player_joined'
PLAYER_LEFT = 'room:player_left'
ROOM_CLOSED = 'room:closed'
GAME_STARTED = 'game:started'
ROUND_STARTED = 'round:started'
CORRECT_GUESS = 'game:correct_guess'
LEADERBOARD_UPDATE = 'game:leaderboard_update'
ROUND_ENDED = 'round:ended'
GAME_ENDED = 'game:ended'


def room_channel(room_code: str) -> str:
    return f"room:{room_code}"


class RoomEvents:
    """Named notifications pushed to every socket in a room's channel."""

    def __init__(self, socketio):
        self._socketio = socketio

    def _emit(self, room_code, name, payload):
        self._socketio.emit(name, payload, to=room_channel(room_code), namespace=NAMESPACE)

    def player_joined(self, room_code, player, players):
        self._emit(room_code, PLAYER_JOINED, {
            'player_id': player.player_id,
            'display_name': player.display_name,
            'avatar': player.avatar,
            'players': players,
        })

    def player_left(self, room_code, player_id, players):
        self._emit(room_code, PLAYER_LEFT, {'player_id': player_id, 'players': players})

    def room_closed(self, room_code):
        self._emit(room_code, ROOM_CLOSED, {'room_code': room_code})

    def game_started(self, room):
        self._emit(room.code, GAME_STARTED, {
            'total_rounds': room.total_rounds,
            'round_duration': room.round_duration,
        })

    def round_started(self, room):
        # Title and artist stay server-side until the round ends
        self._emit(room.code, ROUND_STARTED, {
            'round_number': room.current_round,
            'track': room.track_payload(reveal=False),
            'round_duration': room.round_duration,
            'round_deadline': room.round_deadline,
        })

    def correct_guess(self, room_code, player, result):
        self._emit(room_code, CORRECT_GUESS, {
            'player_id': player.player_id,
            'display_name': player.display_name,
            'fields': sorted(result.fields_claimed),
            'points': result.points_awarded,
        })

    def leaderboard_update(self, room_code, leaderboard):
        self._emit(room_code, LEADERBOARD_UPDATE, {'leaderboard': leaderboard})

    def round_ended(self, room):
        self._emit(room.code, ROUND_ENDED, {
            'round_number': room.current_round,
            'answer': {
                'title': room.track_title,
                'artist': room.track_artist,
                'track_id': room.track_id,
            },
            'artist_guessed_by': room.artist_guessed_by,
            'title_guessed_by': room.title_guessed_by,
        })

    def game_ended(self, room_code, leaderboard):
        self._emit(room_code, GAME_ENDED, {'leaderboard': leaderboard})
