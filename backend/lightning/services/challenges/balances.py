from datetime import date

from sqlalchemy import case

from lightning import db
from lightning.models import PointTransfer, UserProgress


def get_progress(user_id: str) -> UserProgress:
    """Return the player's balance row, creating an empty one if missing (no commit)."""
    progress = UserProgress.query.filter_by(user_id=user_id).first()
    if progress is None:
        progress = UserProgress(user_id=user_id, mastery_points=0, weekly_mastery_points=0)
        db.session.add(progress)
        db.session.flush()
    return progress


def weekly_points(user_id: str) -> int:
    progress = UserProgress.query.filter_by(user_id=user_id).first()
    return int(progress.weekly_mastery_points) if progress else 0


def _clamped_minus(column, points):
    return case((column - points < 0, 0), else_=column - points)


def transfer_stake(challenge_id: str, winner_id: str, loser_id: str, points: int) -> PointTransfer:
    """Move ``points`` from loser to winner inside the current transaction.

    The ledger row is unique per challenge, so a second transfer for the same
    challenge fails at flush instead of moving points twice. The loser's
    balances clamp at zero.
    """
    get_progress(winner_id)
    get_progress(loser_id)

    ledger = PointTransfer(
        challenge_id=challenge_id,
        winner_user_id=winner_id,
        loser_user_id=loser_id,
        points=points,
    )
    db.session.add(ledger)
    db.session.flush()

    UserProgress.query.filter_by(user_id=winner_id).update(
        {
            UserProgress.mastery_points: UserProgress.mastery_points + points,
            UserProgress.weekly_mastery_points: UserProgress.weekly_mastery_points + points,
        },
        synchronize_session=False,
    )
    UserProgress.query.filter_by(user_id=loser_id).update(
        {
            UserProgress.mastery_points: _clamped_minus(UserProgress.mastery_points, points),
            UserProgress.weekly_mastery_points: _clamped_minus(UserProgress.weekly_mastery_points, points),
        },
        synchronize_session=False,
    )
    return ledger


def reset_weekly_points(today=None) -> int:
    """Zero every non-zero weekly balance and stamp the reset date (commits)."""
    today = today or date.today()
    updated = (
        UserProgress.query
        .filter(UserProgress.weekly_mastery_points != 0)
        .update(
            {
                UserProgress.weekly_mastery_points: 0,
                UserProgress.weekly_points_reset_date: today,
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    return updated
