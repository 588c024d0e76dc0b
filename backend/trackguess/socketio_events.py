from flask import current_app, request, session
from flask_socketio import emit, join_room, leave_room

from trackguess import db, socketio
from trackguess.services.games.errors import ErrorKind
from trackguess.services.games.events import NAMESPACE, room_channel
from trackguess.services.games.orchestrator import get_orchestrator


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    room_code = session.pop('room_code', None)
    player_id = session.pop('player_id', None)
    if not room_code or not player_id:
        return
    current_app.logger.info(f"[socket-disconnect] room={room_code} player={player_id} sid={request.sid} reason={reason}")
    get_orchestrator().disconnect(room_code, player_id)


def handle_join(data):
    data = data or {}
    room_code = (data.get('room_code') or '').strip().lower()
    player_id = (data.get('player_id') or '').strip()
    if not room_code or not player_id:
        emit('error', {'code': 'invalid_request', 'message': 'room_code and player_id are required'})
        return

    # Subscribe first so this socket also receives its own player_joined
    channel = room_channel(room_code)
    join_room(channel)
    result = get_orchestrator().join_room(
        room_code, player_id, display_name=data.get('display_name'), avatar=data.get('avatar')
    )
    if not result.success:
        leave_room(channel)
        _reject(result)
        return

    session['room_code'] = room_code
    session['player_id'] = player_id
    emit('room:joined', {'room': result.value})


def handle_leave(data=None):
    ctx = _context()
    if ctx is None:
        return
    room_code, player_id = ctx
    result = get_orchestrator().leave_room(room_code, player_id)
    leave_room(room_channel(room_code))
    session.pop('room_code', None)
    session.pop('player_id', None)
    if not result.success:
        _reject(result)
        return
    emit('room:left', {'room_code': room_code})


def handle_start(data=None):
    ctx = _context()
    if ctx is None:
        return
    room_code, player_id = ctx
    result = get_orchestrator().start_game(room_code, player_id)
    if not result.success:
        _reject(result)


def handle_guess(data):
    ctx = _context()
    if ctx is None:
        return
    room_code, player_id = ctx
    guess = (data or {}).get('guess')
    if not isinstance(guess, str):
        emit('error', {'code': 'invalid_request', 'message': 'Guess must be text'})
        return
    result = get_orchestrator().submit_guess(room_code, player_id, guess)
    if not result.success:
        _reject(result)
        return
    emit('game:guess_result', result.value.to_dict())


def handle_next_round(data=None):
    ctx = _context()
    if ctx is None:
        return
    room_code, player_id = ctx
    result = get_orchestrator().next_round(room_code, player_id)
    if not result.success:
        _reject(result)


def handle_close(data=None):
    ctx = _context()
    if ctx is None:
        return
    room_code, player_id = ctx
    result = get_orchestrator().close_room(room_code, player_id)
    if not result.success:
        _reject(result)


def handle_ping(data=None):
    emit('pong', data or {})


def handle_error(exc):
    db.session.rollback()
    current_app.logger.exception(f"[socket-error] sid={request.sid} event={request.event.get('message') if getattr(request, 'event', None) else None}")
    emit('error', {'code': 'internal_error', 'message': 'Something went wrong'})


def _context():
    """(room_code, player_id) this socket joined as, or None after telling the sender."""
    room_code = session.get('room_code')
    player_id = session.get('player_id')
    if not room_code or not player_id:
        emit('error', {'code': 'not_in_room', 'message': 'Join a room first'})
        return None
    return room_code, player_id


def _reject(result):
    # Late guesses after a round closes are expected noise
    if result.error_kind == ErrorKind.INACTIVE_ROUND:
        return
    emit('error', {'code': result.error_code, 'message': result.error_message})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('room:join', handle_join, namespace=NAMESPACE)
    socketio.on_event('room:leave', handle_leave, namespace=NAMESPACE)
    socketio.on_event('game:start', handle_start, namespace=NAMESPACE)
    socketio.on_event('game:guess', handle_guess, namespace=NAMESPACE)
    socketio.on_event('game:next_round', handle_next_round, namespace=NAMESPACE)
    socketio.on_event('room:close', handle_close, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
    socketio.on_error(NAMESPACE)(handle_error)
