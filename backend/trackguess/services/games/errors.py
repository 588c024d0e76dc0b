"""Rule violations raised by the game services and the outcome type handed to callers.

Expected conditions (room full, wrong actor, round already over...) are raised
internally as ``GameRuleError`` subclasses and converted to a ``GameResult`` at
the orchestrator boundary. Anything else is an infrastructure fault and
propagates to the transport layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = 'validation'
    NOT_FOUND = 'not_found'
    FORBIDDEN = 'forbidden'
    CONFLICT = 'conflict'
    UPSTREAM_UNAVAILABLE = 'upstream_unavailable'
    INACTIVE_ROUND = 'inactive_round'


class GameRuleError(Exception):
    kind = ErrorKind.CONFLICT
    code = 'conflict'
    message = 'That action is not allowed right now'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(GameRuleError):
    kind = ErrorKind.VALIDATION
    code = 'invalid_request'
    message = 'Invalid request'


class PrerequisiteNotMet(ValidationError):
    code = 'prerequisite_not_met'
    message = 'Host must connect a music account first'


class NotFound(GameRuleError):
    kind = ErrorKind.NOT_FOUND
    code = 'not_found'
    message = 'Not found'


class RoomNotFound(NotFound):
    code = 'room_not_found'
    message = 'Room not found'


class NotAMember(NotFound):
    code = 'not_a_member'
    message = 'You are not a player in this room'


class Forbidden(GameRuleError):
    kind = ErrorKind.FORBIDDEN
    code = 'forbidden'
    message = 'Only the host can do that'


class Conflict(GameRuleError):
    kind = ErrorKind.CONFLICT


class RoomNotJoinable(Conflict):
    code = 'room_not_joinable'
    message = 'Game already started'


class RoomFull(Conflict):
    code = 'room_full'
    message = 'Room is full'


class AlreadyStarted(Conflict):
    code = 'already_started'
    message = 'Game already started'


class NoPlayers(Conflict):
    code = 'no_players'
    message = 'No players in room'


class RoundsExhausted(Conflict):
    code = 'rounds_exhausted'
    message = 'All rounds completed'


class RoundNotEnded(Conflict):
    code = 'round_not_ended'
    message = 'Current round not ended'


class RoundInProgress(Conflict):
    code = 'round_in_progress'
    message = 'A round is already in progress'


class RoomNotActive(Conflict):
    code = 'room_not_active'
    message = 'This room is no longer active'


class HostHasActiveRoom(Conflict):
    code = 'host_has_active_room'
    message = 'Host already has an active room'


class StateChanged(Conflict):
    code = 'state_changed'
    message = 'Room state changed, please retry'


class UpstreamUnavailable(GameRuleError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    code = 'upstream_unavailable'
    message = 'Service unavailable, try again'


class TrackUnavailable(UpstreamUnavailable):
    code = 'track_unavailable'
    message = 'Could not load a track, try again'


class InactiveRound(GameRuleError):
    kind = ErrorKind.INACTIVE_ROUND
    code = 'inactive_round'
    message = 'Round is not active'


@dataclass
class GameResult:
    """Outcome of an orchestrator operation."""

    success: bool
    value: Any = None
    error_code: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, value=None):
        return cls(success=True, value=value)

    @classmethod
    def rejected(cls, error: GameRuleError):
        return cls(
            success=False,
            error_code=error.code,
            error_kind=error.kind,
            error_message=error.message,
        )

    def to_error_dict(self):
        return {'error': self.error_code, 'message': self.error_message}
