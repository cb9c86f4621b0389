import json
import os
import sys
import pytest
from sqlalchemy import event

# Ensure the backend root (containing the `lightning` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from lightning import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROUND_DURATION_SEC = 30
    ROUND_POOL_SIZE = 20
    ROUND_FEEDBACK_MS = 0
    ROUND_QUESTION_TYPE = 'multiple_choice'
    MIN_STAKE = 10
    STAKE_CAP_RATIO = 0.30
    WEBHOOK_URL = None
    WEBHOOK_TIMEOUT_SEC = 1


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import lightning.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database that several threads can share."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'lightning.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        engine = db.engine

        @event.listens_for(engine, 'connect')
        def _connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        # Writers queue on the busy timeout instead of failing with "database is locked"
        @event.listens_for(engine, 'begin')
        def _begin(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

        import lightning.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
        engine.dispose()


@pytest.fixture(autouse=True)
def clear_rounds():
    from lightning.services.challenges.rounds import registry
    registry.clear()
    yield
    registry.clear()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def make_player(flask_app):
    """Create a profile with a point balance."""
    from lightning.models import Profile, UserProgress

    def _make(user_id, weekly=100, total=None, name=None):
        db.session.add(Profile(id=user_id, full_name=name or user_id.title()))
        db.session.add(UserProgress(
            user_id=user_id,
            mastery_points=weekly if total is None else total,
            weekly_mastery_points=weekly,
        ))
        db.session.commit()
        return user_id

    return _make


@pytest.fixture()
def make_subject(flask_app):
    """Create a subject with ``count`` multiple-choice questions whose answer is 'right'."""
    from lightning.models import Subject, Question

    def _make(subject_id='algebra', count=5, name='Algebra'):
        db.session.add(Subject(id=subject_id, name=name))
        for i in range(count):
            db.session.add(Question(
                subject_id=subject_id,
                question_text=f'{name} question {i + 1}',
                options=json.dumps(['right', 'wrong', 'also wrong', 'nope']),
                correct_answer='right',
            ))
        db.session.commit()
        return subject_id

    return _make


@pytest.fixture()
def balance(flask_app):
    from lightning.models import UserProgress

    def _balance(user_id):
        db.session.expire_all()
        progress = UserProgress.query.filter_by(user_id=user_id).first()
        return (progress.mastery_points, progress.weekly_mastery_points)

    return _balance
