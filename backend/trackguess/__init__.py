from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from trackguess.config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

DEMO_USERS = [
    ('demo-host', 'DemoHost'),
    ('demo-guest', 'DemoGuest'),
]


def create_app(config_class=Config, track_source=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from trackguess.main import main
    flask_app.register_blueprint(main)

    from trackguess.api.rooms import rooms, register_error_handlers
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')
    register_error_handlers(flask_app)

    # Game services live on the app so timers and handlers share one scheduler per process
    from trackguess.services.games.orchestrator import GameOrchestrator
    from trackguess.services.games.track_source import build_track_source
    if track_source is None:
        track_source = build_track_source(flask_app)
    flask_app.extensions['trackguess'] = GameOrchestrator.from_app(flask_app, socketio, track_source)

    from trackguess.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from trackguess.models import User
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for user_id, username in DEMO_USERS:
                db.session.add(User(id=user_id, username=username))

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
