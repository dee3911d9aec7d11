from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import logging
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

from quizarena.services.bridge import SqlAlchemyBridge  # noqa: E402

bridge = SqlAlchemyBridge()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    flask_app.logger.setLevel(level)
    logging.getLogger('quizarena').setLevel(level)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Row changes go to in-process subscribers and out to Socket.IO channels
    from quizarena.socketio_events import broadcast_change, register_socketio_handlers
    bridge.init_app(flask_app, db, emitter=broadcast_change)

    from quizarena.routes import main
    flask_app.register_blueprint(main)

    from quizarena.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from quizarena.api.play import play
    flask_app.register_blueprint(play, url_prefix='/api/play')

    register_socketio_handlers()

    from quizarena.errors import QuizError

    @flask_app.errorhandler(QuizError)
    def handle_quiz_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    from quizarena.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from quizarena.seed import seed_questions, seed_users
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            users = seed_users(['testuser1', 'testuser2', 'testuser3'], 'password')
            questions = seed_questions()
            print(f'Database has been reset and seeded! users={len(users)} questions={len(questions)}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
