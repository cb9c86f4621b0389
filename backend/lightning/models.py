from lightning import db
from datetime import datetime, timezone
import json
import uuid

PENDING = 'pending'
COMPLETED = 'completed'
CHALLENGE_STATUSES = (PENDING, COMPLETED)


def _utcnow():
    return datetime.now(timezone.utc)


def generate_id():
    """Opaque identifier for challenges, attempts and ledger rows."""
    return uuid.uuid4().hex


def _iso(value):
    return value.isoformat() if value else None


class Profile(db.Model):
    """Read-only view of the user directory, used for display names."""
    __tablename__ = 'profile'
    id = db.Column(db.String(64), primary_key=True)
    full_name = db.Column(db.String(128), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    @property
    def display_name(self):
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split('@')[0]
        return 'Unknown'

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name,
        }


class Subject(db.Model):
    __tablename__ = 'subject'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    questions = db.relationship('Question', backref='subject', lazy='dynamic')

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    subject_id = db.Column(db.String(64), db.ForeignKey('subject.id'), nullable=False, index=True)
    question_text = db.Column(db.Text, nullable=False)
    options = db.Column(db.Text, nullable=True)  # JSON-encoded list of strings
    correct_answer = db.Column(db.String(255), nullable=False)
    question_type = db.Column(db.String(32), nullable=False, default='multiple_choice')

    @property
    def option_list(self):
        try:
            value = json.loads(self.options) if self.options else []
        except ValueError:
            return []
        return value if isinstance(value, list) else []

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'question_text': self.question_text,
            'options': self.option_list,
        }
        if include_answer:
            data['correct_answer'] = self.correct_answer
        return data


class UserProgress(db.Model):
    """Point balances owned by progress tracking; settlement moves stakes here."""
    __tablename__ = 'user_progress'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    mastery_points = db.Column(db.Integer, nullable=False, default=0)
    weekly_mastery_points = db.Column(db.Integer, nullable=False, default=0)
    weekly_points_reset_date = db.Column(db.Date, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint('mastery_points >= 0', name='ck_user_progress_total_non_negative'),
        db.CheckConstraint('weekly_mastery_points >= 0', name='ck_user_progress_weekly_non_negative'),
    )

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'total_points': self.mastery_points,
            'weekly_points': self.weekly_mastery_points,
            'weekly_points_reset_date': _iso(self.weekly_points_reset_date),
        }


class Challenge(db.Model):
    __tablename__ = 'challenge'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    challenger_user_id = db.Column(db.String(64), nullable=False, index=True)
    opponent_user_id = db.Column(db.String(64), nullable=False, index=True)
    cohort_id = db.Column(db.String(64), nullable=False)
    subject_id = db.Column(db.String(64), nullable=False)
    stake_points = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PENDING, index=True)  # pending, completed
    winner_user_id = db.Column(db.String(64), nullable=True)
    is_draw = db.Column(db.Boolean, nullable=False, default=False)
    previous_challenge_id = db.Column(db.String(32), db.ForeignKey('challenge.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    attempts = db.relationship('ChallengeAttempt', backref='challenge', lazy='dynamic')

    __table_args__ = (
        db.CheckConstraint('stake_points > 0', name='ck_challenge_stake_positive'),
        db.CheckConstraint('challenger_user_id <> opponent_user_id', name='ck_challenge_distinct_players'),
    )

    @property
    def participants(self):
        return (self.challenger_user_id, self.opponent_user_id)

    def other_participant(self, user_id):
        if user_id == self.challenger_user_id:
            return self.opponent_user_id
        if user_id == self.opponent_user_id:
            return self.challenger_user_id
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'challenger_user_id': self.challenger_user_id,
            'opponent_user_id': self.opponent_user_id,
            'cohort_id': self.cohort_id,
            'subject_id': self.subject_id,
            'stake_points': self.stake_points,
            'status': self.status,
            'winner_user_id': self.winner_user_id,
            'is_draw': self.is_draw,
            'previous_challenge_id': self.previous_challenge_id,
            'is_revenge': self.previous_challenge_id is not None,
            'created_at': _iso(self.created_at),
            'completed_at': _iso(self.completed_at),
        }


class ChallengeAttempt(db.Model):
    __tablename__ = 'challenge_attempt'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    challenge_id = db.Column(db.String(32), db.ForeignKey('challenge.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    questions_answered = db.Column(db.Integer, nullable=False, default=0)
    seconds_used = db.Column(db.Float, nullable=False, default=0.0)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint('challenge_id', 'user_id', name='uq_challenge_attempt_player'),
        db.CheckConstraint('score >= 0', name='ck_challenge_attempt_score_non_negative'),
        db.CheckConstraint('questions_answered >= 0', name='ck_challenge_attempt_answered_non_negative'),
        db.CheckConstraint('seconds_used >= 0', name='ck_challenge_attempt_seconds_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'challenge_id': self.challenge_id,
            'user_id': self.user_id,
            'score': self.score,
            'questions_answered': self.questions_answered,
            'seconds_used': self.seconds_used,
            'completed_at': _iso(self.completed_at),
        }


class PointTransfer(db.Model):
    """Settlement ledger: at most one stake transfer per challenge."""
    __tablename__ = 'point_transfer'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    challenge_id = db.Column(db.String(32), db.ForeignKey('challenge.id'), nullable=False, unique=True)
    winner_user_id = db.Column(db.String(64), nullable=False)
    loser_user_id = db.Column(db.String(64), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            'challenge_id': self.challenge_id,
            'winner_user_id': self.winner_user_id,
            'loser_user_id': self.loser_user_id,
            'points': self.points,
            'created_at': _iso(self.created_at),
        }
