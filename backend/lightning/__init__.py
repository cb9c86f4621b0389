from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from lightning.main import main
    flask_app.register_blueprint(main)

    from lightning.api.challenges import challenges
    flask_app.register_blueprint(challenges, url_prefix='/api/challenges')

    # Register Socket.IO event handlers against the initialized socketio instance
    from lightning.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with demo players and questions."""
        from lightning.models import Profile, Subject, Question, UserProgress
        import json
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for uid, name in [('user-1', 'Ada Lovelace'), ('user-2', 'Alan Turing'), ('user-3', 'Grace Hopper')]:
                db.session.add(Profile(id=uid, full_name=name))
                db.session.add(UserProgress(user_id=uid, mastery_points=120, weekly_mastery_points=60))

            subject = Subject(id='arithmetic', name='Arithmetic')
            db.session.add(subject)
            for a in range(1, 21):
                b = a + 3
                answers = [str(a + b), str(a + b + 1), str(a + b - 1), str(a * b)]
                db.session.add(Question(
                    subject_id=subject.id,
                    question_text=f'What is {a} + {b}?',
                    options=json.dumps(answers),
                    correct_answer=str(a + b),
                ))

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('reset-weekly-points')
    def reset_weekly_points_command():
        """Zeroes every player's weekly points (run weekly by cron)."""
        from lightning.services.challenges.balances import reset_weekly_points
        with flask_app.app_context():
            updated = reset_weekly_points()
            print(f'Weekly points reset for {updated} players.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reset_weekly_points_command)

    return flask_app
