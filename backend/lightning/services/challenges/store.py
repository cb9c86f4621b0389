"""Challenge and attempt persistence.

``mark_completed`` is the compare-and-swap that gates settlement: one
conditional UPDATE that only matches while the row is still pending.
Functions here flush but never commit unless noted; the caller owns the
transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from lightning import db
from lightning.models import Challenge, ChallengeAttempt, PENDING, COMPLETED, CHALLENGE_STATUSES
from .errors import (
    AlreadyCompleted,
    AlreadySubmitted,
    ChallengeNotFound,
    ValidationError,
)


def get_challenge(challenge_id: str) -> Challenge:
    challenge = db.session.get(Challenge, challenge_id) if challenge_id else None
    if challenge is None:
        raise ChallengeNotFound(f'Challenge {challenge_id} not found')
    return challenge


def refresh_challenge(challenge_id: str) -> Challenge:
    """Re-read a challenge from storage, bypassing the identity map."""
    challenge = db.session.get(Challenge, challenge_id, populate_existing=True)
    if challenge is None:
        raise ChallengeNotFound(f'Challenge {challenge_id} not found')
    return challenge


def create_pending_challenge(challenger_id: str, opponent_id: str, cohort_id: str, subject_id: str,
                             stake: int, previous_challenge_id: Optional[str] = None) -> Challenge:
    if not all([challenger_id, opponent_id, cohort_id, subject_id]):
        raise ValidationError('challenger, opponent, cohort and subject are required')
    if challenger_id == opponent_id:
        raise ValidationError('You cannot challenge yourself')
    if stake is None or stake <= 0:
        raise ValidationError('Stake must be positive')

    challenge = Challenge(
        challenger_user_id=challenger_id,
        opponent_user_id=opponent_id,
        cohort_id=cohort_id,
        subject_id=subject_id,
        stake_points=stake,
        status=PENDING,
        previous_challenge_id=previous_challenge_id,
    )
    db.session.add(challenge)
    db.session.commit()
    return challenge


def list_for_user(user_id: str, status: Optional[str] = None) -> List[Challenge]:
    if status is not None and status not in CHALLENGE_STATUSES:
        raise ValidationError(f'Unknown status {status!r}')
    query = Challenge.query.filter(
        or_(Challenge.challenger_user_id == user_id, Challenge.opponent_user_id == user_id)
    )
    if status is not None:
        query = query.filter(Challenge.status == status)
    return query.order_by(Challenge.created_at.desc()).all()


def mark_completed(challenge_id: str, winner_id: Optional[str], is_draw: bool) -> None:
    """Flip ``pending`` to ``completed`` or raise ``AlreadyCompleted``."""
    now = datetime.now(timezone.utc)
    updated = (
        Challenge.query
        .filter(Challenge.id == challenge_id, Challenge.status == PENDING)
        .update(
            {
                Challenge.status: COMPLETED,
                Challenge.winner_user_id: None if is_draw else winner_id,
                Challenge.is_draw: bool(is_draw),
                Challenge.completed_at: now,
                Challenge.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise AlreadyCompleted(f'Challenge {challenge_id} is already completed')


def get_attempts(challenge_id: str) -> List[ChallengeAttempt]:
    return (
        ChallengeAttempt.query
        .filter_by(challenge_id=challenge_id)
        .order_by(ChallengeAttempt.completed_at.asc())
        .all()
    )


def get_attempt(challenge_id: str, user_id: str) -> Optional[ChallengeAttempt]:
    return ChallengeAttempt.query.filter_by(challenge_id=challenge_id, user_id=user_id).first()


def record_attempt(challenge_id: str, user_id: str, score: int, questions_answered: int,
                   seconds_used: float) -> ChallengeAttempt:
    """Insert the one attempt a player gets for a challenge (commits)."""
    challenge = get_challenge(challenge_id)
    if user_id not in challenge.participants:
        raise ValidationError('Only the challenger or the opponent may submit an attempt')
    _validate_outcome(score, questions_answered, seconds_used)

    if get_attempt(challenge_id, user_id) is not None:
        raise AlreadySubmitted(f'{user_id} already submitted an attempt for challenge {challenge_id}')

    attempt = ChallengeAttempt(
        challenge_id=challenge_id,
        user_id=user_id,
        score=score,
        questions_answered=questions_answered,
        seconds_used=float(seconds_used),
    )
    db.session.add(attempt)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent submission for the same player
        db.session.rollback()
        raise AlreadySubmitted(f'{user_id} already submitted an attempt for challenge {challenge_id}')
    except Exception:
        db.session.rollback()
        raise
    return attempt


def _validate_outcome(score, questions_answered, seconds_used) -> None:
    cfg = current_app.config
    pool_size = int(cfg.get('ROUND_POOL_SIZE', 20))
    duration = float(cfg.get('ROUND_DURATION_SEC', 30))

    for name, value in (('score', score), ('questions_answered', questions_answered)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f'{name} must be an integer')
        if value < 0:
            raise ValidationError(f'{name} must not be negative')
    if questions_answered > pool_size:
        raise ValidationError(f'questions_answered cannot exceed {pool_size}')
    if score > questions_answered:
        raise ValidationError('score cannot exceed questions_answered')
    if isinstance(seconds_used, bool) or not isinstance(seconds_used, (int, float)):
        raise ValidationError('seconds_used must be a number')
    if not (0 <= seconds_used <= duration):
        raise ValidationError(f'seconds_used must be between 0 and {duration:g}')
