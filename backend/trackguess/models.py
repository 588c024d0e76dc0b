from trackguess import db
import time


class RoomStatus:
    WAITING = 'waiting'
    PLAYING = 'playing'
    ROUND_END = 'round_end'
    GAME_END = 'game_end'
    CLOSED = 'closed'

    ALL = (WAITING, PLAYING, ROUND_END, GAME_END, CLOSED)
    # Rooms a host is still running; used to stop a host from opening a second one
    ACTIVE = (WAITING, PLAYING, ROUND_END)


class SongSource:
    LIKED_SONGS = 'liked_songs'
    PLAYLIST = 'playlist'
    TOP_TRACKS = 'top_tracks'

    ALL = (LIKED_SONGS, PLAYLIST, TOP_TRACKS)


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(64), primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    avatar = db.Column(db.String(256), nullable=True)
    spotify_access_token = db.Column(db.Text, nullable=True)
    spotify_refresh_token = db.Column(db.Text, nullable=True)
    spotify_expires_at = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.Float, default=time.time, nullable=False)

    @property
    def spotify_connected(self):
        return bool(self.spotify_access_token and self.spotify_refresh_token)


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(12), unique=True, index=True, nullable=False)
    host_id = db.Column(db.String(64), nullable=False, index=True)
    max_players = db.Column(db.Integer, default=10, nullable=False)
    total_rounds = db.Column(db.Integer, nullable=False)
    current_round = db.Column(db.Integer, default=0, nullable=False)
    round_duration = db.Column(db.Integer, default=30, nullable=False)
    status = db.Column(db.String(16), default=RoomStatus.WAITING, nullable=False)
    song_source = db.Column(db.String(16), nullable=False)
    song_source_id = db.Column(db.String(128), nullable=True)
    # Current round; reset every time a round starts
    track_id = db.Column(db.String(64), nullable=True)
    track_title = db.Column(db.String(256), nullable=True)
    track_artist = db.Column(db.String(256), nullable=True)
    track_album_art = db.Column(db.String(512), nullable=True)
    track_duration_ms = db.Column(db.Integer, nullable=True)
    track_preview_url = db.Column(db.String(512), nullable=True)
    round_started_at = db.Column(db.Float, nullable=True)
    round_deadline = db.Column(db.Float, nullable=True)
    artist_guessed_by = db.Column(db.String(64), nullable=True)
    title_guessed_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time, nullable=False)

    @property
    def has_track(self):
        return bool(self.track_id)

    def track_payload(self, reveal=False):
        """Client view of the current track; title and artist only when revealed."""
        if not self.has_track:
            return None
        payload = {
            'track_id': self.track_id,
            'album_art': self.track_album_art,
            'duration_ms': self.track_duration_ms,
            'preview_url': self.track_preview_url,
            'start_time': int(self.round_started_at * 1000) if self.round_started_at else None,
        }
        if reveal:
            payload['title'] = self.track_title
            payload['artist'] = self.track_artist
        return payload

    def to_dict(self):
        reveal = self.status != RoomStatus.PLAYING
        return {
            'room_code': self.code,
            'host_id': self.host_id,
            'max_players': self.max_players,
            'total_rounds': self.total_rounds,
            'current_round': self.current_round,
            'round_duration': self.round_duration,
            'status': self.status,
            'song_source': self.song_source,
            'song_source_id': self.song_source_id,
            'round_deadline': self.round_deadline,
            'track': self.track_payload(reveal=reveal),
            'artist_guessed_by': self.artist_guessed_by,
            'title_guessed_by': self.title_guessed_by,
        }


class RoomPlayer(db.Model):
    __tablename__ = 'room_player'
    __table_args__ = (
        db.UniqueConstraint('room_code', 'player_id', name='uq_room_player_room_code_player_id'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(12), db.ForeignKey('room.code'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=False)
    avatar = db.Column(db.String(256), nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    source_linked = db.Column(db.Boolean, default=False, nullable=False)
    connected = db.Column(db.Boolean, default=True, nullable=False)
    joined_at = db.Column(db.Float, default=time.time, nullable=False)
    last_activity_at = db.Column(db.Float, default=time.time, nullable=False)

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'display_name': self.display_name,
            'avatar': self.avatar,
            'score': self.score,
            'source_linked': self.source_linked,
            'connected': self.connected,
        }
