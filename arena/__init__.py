from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    flask_app.extensions['arena'] = _build_arena(flask_app, scheduler)

    from arena.main import main
    flask_app.register_blueprint(main, url_prefix='/api/auth')

    from arena.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from arena.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Not authenticated', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def _build_arena(flask_app, scheduler=None):
    from arena.services.sessions import SessionRegistry, build_arena
    from arena.services.sessions.archive import GameArchive
    from arena.services.sessions.broadcaster import RoomBroadcaster
    from arena.services.sessions.rules import build_rules
    from arena.services.sessions.timers import BackgroundScheduler, ManualScheduler

    cfg = flask_app.config
    if scheduler is None:
        # Timers only advance when a test moves the clock
        if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
            scheduler = ManualScheduler()
        else:
            scheduler = BackgroundScheduler(socketio, logger=flask_app.logger)

    return build_arena(
        SessionRegistry(code_length=int(cfg.get('SESSION_CODE_LENGTH', 6))),
        RoomBroadcaster(socketio),
        scheduler,
        build_rules(cfg),
        archive=GameArchive(flask_app),
        logger=flask_app.logger,
        abandon_grace=int(cfg.get('ABANDON_GRACE_SEC', 60)),
        abandon_teardown=int(cfg.get('ABANDON_TEARDOWN_SEC', 300)),
        finished_ttl=int(cfg.get('FINISHED_SESSION_TTL_SEC', 3600)),
        waiting_ttl=int(cfg.get('WAITING_SESSION_TTL_SEC', 1800)),
        pending_ttl=int(cfg.get('MATCH_PENDING_TTL_SEC', 600)),
        bot_delay=float(cfg.get('BOT_MOVE_DELAY_SEC', 1.5)),
        battle_delay=float(cfg.get('BOT_BATTLE_DELAY_SEC', 2.0)),
        strict=bool(cfg.get('STRICT_INVARIANTS') or cfg.get('TESTING') or flask_app.debug),
    )
