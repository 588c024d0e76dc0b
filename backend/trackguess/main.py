from flask import Blueprint, jsonify
from sqlalchemy import text

from trackguess import db

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the TrackGuess game server!'})


@main.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except Exception as exc:
        db.session.rollback()
        return jsonify({'status': 'degraded', 'database': str(exc.__class__.__name__)}), 503
    return jsonify({'status': 'ok'})
