from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import json
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One round registry per app; rounds live in memory for their lifetime
    from blitz.services.trivia.registry import RoundRegistry
    flask_app.extensions['blitz_rounds'] = RoundRegistry(flask_app)

    from blitz.main import main
    flask_app.register_blueprint(main, url_prefix='/api/auth')

    from blitz.api.trivia import trivia
    flask_app.register_blueprint(trivia, url_prefix='/api/trivia')

    from blitz.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from blitz.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from blitz.seed import SAMPLE_QUESTIONS, SAMPLE_USERS
        from blitz.services.trivia.store import load_questions
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for username in SAMPLE_USERS:
                user = User(username=username, email=f'{username}@example.com')
                user.set_password('password')
                db.session.add(user)
            db.session.commit()

            created = load_questions(SAMPLE_QUESTIONS)
        click.echo(f'Database has been reset and seeded with {len(created)} questions!')

    @click.command('import-questions')
    @click.argument('path', type=click.File('r', encoding='utf-8'))
    def import_questions_command(path):
        """Loads a JSON list of questions into the question store."""
        from blitz.services.trivia.store import load_questions
        try:
            records = json.load(path)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f'Invalid JSON: {exc}')
        if not isinstance(records, list):
            raise click.ClickException('Expected a JSON list of questions')
        with flask_app.app_context():
            try:
                created = load_questions(records)
            except ValueError as exc:
                raise click.ClickException(str(exc))
            weeks = sorted({q.week for q in created})
        click.echo(f'Imported {len(created)} questions for weeks {weeks}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(import_questions_command)

    return flask_app
