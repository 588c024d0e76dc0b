from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from trackguess import db
from trackguess.services.games.errors import ErrorKind, GameResult
from trackguess.services.games.orchestrator import get_orchestrator

rooms = Blueprint('rooms', __name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.INACTIVE_ROUND: 409,
}


def _respond(result: GameResult, status: int = 200):
    if result.success:
        value = result.value
        if hasattr(value, 'to_dict'):
            value = value.to_dict()
        return jsonify(value if value is not None else {'success': True}), status
    return jsonify(result.to_error_dict()), _STATUS_BY_KIND.get(result.error_kind, 400)


def _payload():
    return request.get_json(silent=True) or {}


def _player_id(data):
    return (data.get('player_id') or '').strip() or None


@rooms.route('/create', methods=['POST'])
def create_room():
    data = _payload()
    result = get_orchestrator().create_room(
        _player_id(data),
        data,
        display_name=data.get('display_name'),
        avatar=data.get('avatar'),
    )
    return _respond(result, 201)


@rooms.route('/join', methods=['POST'])
def join_room():
    data = _payload()
    room_code = (data.get('room_code') or '').strip().lower()
    if not room_code:
        return jsonify({'error': 'invalid_request', 'message': 'Room code is required'}), 400
    result = get_orchestrator().join_room(
        room_code,
        _player_id(data),
        display_name=data.get('display_name'),
        avatar=data.get('avatar'),
    )
    return _respond(result)


@rooms.route('/<room_code>', methods=['GET'])
def get_room(room_code):
    viewer = request.args.get('player_id')
    return _respond(get_orchestrator().room_state(room_code, viewer=viewer))


@rooms.route('/<room_code>/leaderboard', methods=['GET'])
def get_leaderboard(room_code):
    result = get_orchestrator().leaderboard(room_code)
    if not result.success:
        return _respond(result)
    return jsonify({'room_code': room_code, 'leaderboard': result.value})


@rooms.route('/<room_code>/start', methods=['POST'])
def start_game(room_code):
    data = _payload()
    return _respond(get_orchestrator().start_game(room_code, _player_id(data)))


@rooms.route('/<room_code>/guess', methods=['POST'])
def submit_guess(room_code):
    data = _payload()
    guess = data.get('guess')
    if guess is not None and not isinstance(guess, str):
        return jsonify({'error': 'invalid_request', 'message': 'Guess must be text'}), 400
    return _respond(get_orchestrator().submit_guess(room_code, _player_id(data), guess or ''))


@rooms.route('/<room_code>/next', methods=['POST'])
def next_round(room_code):
    data = _payload()
    return _respond(get_orchestrator().next_round(room_code, _player_id(data)))


@rooms.route('/<room_code>/leave', methods=['POST'])
def leave_room(room_code):
    data = _payload()
    return _respond(get_orchestrator().leave_room(room_code, _player_id(data)))


@rooms.route('/<room_code>/close', methods=['POST'])
def close_room(room_code):
    data = _payload()
    return _respond(get_orchestrator().close_room(room_code, _player_id(data)))


def register_error_handlers(app):
    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        if isinstance(exc, HTTPException):
            return exc
        db.session.rollback()
        current_app.logger.exception(f"[unhandled] {request.method} {request.path}")
        return jsonify({'error': 'internal_error', 'message': 'Something went wrong'}), 500
