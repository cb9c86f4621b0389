"""Public challenge operations.

Every call takes the acting ``user_id`` explicitly; nothing here reads a
login session. HTTP routes and socket handlers should call these functions
rather than the stores directly.
"""

import random
import time
from typing import Dict, List, Optional

from flask import current_app

from lightning.models import ChallengeAttempt, Profile, Subject, PENDING, COMPLETED
from . import balances, stakes, store
from .errors import AlreadySubmitted, RoundNotFound, RoundStateError, ValidationError
from .notify import notify, CHALLENGE_CREATED, REVENGE_CREATED, REMATCH_CREATED
from .rounds import ENDED, RoundSession, load_question_pool, registry
from .scheduler import schedule_round_timer
from .settlement import SettlementResult, try_settle


def _stake_kwargs():
    cfg = current_app.config
    return {
        'floor': int(cfg.get('MIN_STAKE', stakes.MIN_STAKE)),
        'ratio': float(cfg.get('STAKE_CAP_RATIO', stakes.STAKE_CAP_RATIO)),
    }


def _event_payload(challenge) -> Dict:
    return {
        'challenge_id': challenge.id,
        'challenger_user_id': challenge.challenger_user_id,
        'opponent_user_id': challenge.opponent_user_id,
        'subject_id': challenge.subject_id,
        'stake_points': challenge.stake_points,
        'previous_challenge_id': challenge.previous_challenge_id,
    }


# ---- Challenge creation ----

def stake_options(user_id: str) -> Dict:
    weekly = balances.weekly_points(user_id)
    kwargs = _stake_kwargs()
    return {
        'user_id': user_id,
        'weekly_points': weekly,
        'max_stake': stakes.max_stake(weekly, **kwargs),
        'allowed_stakes': stakes.allowed_stakes(weekly, **kwargs),
    }


def create_challenge(challenger_id: str, opponent_id: str, cohort_id: str, subject_id: str, stake):
    if challenger_id == opponent_id:
        raise ValidationError('You cannot challenge yourself')
    stake = stakes.validate_stake(stake, balances.weekly_points(challenger_id))
    challenge = store.create_pending_challenge(challenger_id, opponent_id, cohort_id, subject_id, stake)
    current_app.logger.info(
        f"[challenge-created] challenge={challenge.id} challenger={challenger_id} opponent={opponent_id} stake={stake}"
    )
    notify(CHALLENGE_CREATED, _event_payload(challenge))
    return challenge


def revenge_options(challenge_id: str, user_id: str) -> Dict:
    original = _completed_original(challenge_id, user_id)
    weekly = balances.weekly_points(user_id)
    kwargs = _stake_kwargs()
    return {
        'challenge_id': original.id,
        'previous_stake': original.stake_points,
        'weekly_points': weekly,
        'max_stake': stakes.revenge_cap(original.stake_points, weekly, **kwargs),
        'default_stake': stakes.default_revenge_stake(original.stake_points, weekly, **kwargs),
        'min_stake': stakes.REVENGE_MIN,
        'step': stakes.REVENGE_STEP,
        'is_revenge': _lost(original, user_id),
    }


def create_revenge_or_rematch(original_challenge_id: str, user_id: str, stake=None):
    """New challenge against the same opponent and subject, linked to the original.

    The requester becomes the challenger. The original is left untouched.
    """
    original = _completed_original(original_challenge_id, user_id)
    weekly = balances.weekly_points(user_id)
    kwargs = _stake_kwargs()
    if stake is None:
        stake = stakes.default_revenge_stake(original.stake_points, weekly, **kwargs)
    else:
        stakes.validate_revenge_stake(stake, original.stake_points, weekly, **kwargs)
    stake = stakes.validate_stake(stake, weekly)

    challenge = store.create_pending_challenge(
        user_id,
        original.other_participant(user_id),
        original.cohort_id,
        original.subject_id,
        stake,
        previous_challenge_id=original.id,
    )
    event = REVENGE_CREATED if _lost(original, user_id) else REMATCH_CREATED
    current_app.logger.info(
        f"[{event.replace('_', '-')}] challenge={challenge.id} previous={original.id} by={user_id} stake={stake}"
    )
    notify(event, _event_payload(challenge))
    return challenge


def _completed_original(challenge_id: str, user_id: str):
    original = store.get_challenge(challenge_id)
    if user_id not in original.participants:
        raise ValidationError('Only a participant may ask for a rematch')
    if original.status != COMPLETED:
        raise ValidationError('A rematch is only possible once the challenge is completed')
    return original


def _lost(challenge, user_id: str) -> bool:
    return not challenge.is_draw and challenge.winner_user_id is not None and challenge.winner_user_id != user_id


# ---- Attempts ----

def submit_attempt(challenge_id: str, user_id: str, score, questions_answered, seconds_used) -> SettlementResult:
    try:
        attempt = store.record_attempt(challenge_id, user_id, score, questions_answered, seconds_used)
    except AlreadySubmitted:
        # Both attempts may already be stored while an earlier settlement rolled back
        result = try_settle(challenge_id)
        current_app.logger.info(f"[attempt-dup] challenge={challenge_id} user={user_id} outcome={result.outcome}")
        raise
    current_app.logger.info(
        f"[attempt] challenge={challenge_id} user={user_id} score={attempt.score} "
        f"answered={attempt.questions_answered} seconds={attempt.seconds_used}"
    )
    result = try_settle(challenge_id)
    current_app.logger.info(f"[attempt-settle] challenge={challenge_id} outcome={result.outcome}")
    return result


# ---- Rounds ----

def start_round(challenge_id: str, user_id: str, clock=None, rng: Optional[random.Random] = None) -> RoundSession:
    challenge = store.get_challenge(challenge_id)
    if user_id not in challenge.participants:
        raise ValidationError('Only the challenger or the opponent may play this challenge')
    if challenge.status != PENDING:
        raise RoundStateError('Challenge is already completed')
    existing = registry.for_player(challenge_id, user_id)
    if existing is not None:
        # A previous session whose clock ran out still counts as the attempt
        complete_round(existing)
    if store.get_attempt(challenge_id, user_id) is not None:
        raise RoundStateError('You already played this challenge')

    cfg = current_app.config
    session = RoundSession(
        challenge_id,
        user_id,
        duration=int(cfg.get('ROUND_DURATION_SEC', 30)),
        feedback_sec=int(cfg.get('ROUND_FEEDBACK_MS', 500)) / 1000.0,
        clock=clock or time.monotonic,
    )
    pool = load_question_pool(
        challenge.subject_id,
        question_type=cfg.get('ROUND_QUESTION_TYPE', 'multiple_choice'),
        limit=int(cfg.get('ROUND_POOL_SIZE', 20)),
    )
    session.load(pool, rng=rng)

    replaced = registry.add(session)
    if replaced is not None and replaced.poll() != ENDED:
        replaced.cancel()
        current_app.logger.info(f"[round-replaced] round={replaced.id} by={session.id}")
    current_app.logger.info(
        f"[round-start] round={session.id} challenge={challenge_id} user={user_id} questions={len(session.questions)}"
    )
    schedule_round_timer(current_app._get_current_object(), session, complete_round)
    return session


def _owned_round(session_id: str, user_id: str) -> RoundSession:
    session = registry.get(session_id)
    if session.user_id != user_id:
        raise RoundNotFound(f'Round {session_id} not found')
    return session


def get_round(session_id: str, user_id: str):
    """Current view of a round; submits the attempt if the countdown ran out."""
    session = _owned_round(session_id, user_id)
    session.poll()
    result = complete_round(session)
    return session, result


def answer_round(session_id: str, user_id: str, answer: str):
    session = _owned_round(session_id, user_id)
    feedback = session.answer(answer)
    result = complete_round(session)
    return session, feedback, result


def cancel_round(session_id: str, user_id: str) -> RoundSession:
    session = _owned_round(session_id, user_id)
    session.cancel()
    registry.discard(session)
    current_app.logger.info(f"[round-cancel] round={session.id} challenge={session.challenge_id} user={user_id}")
    return session


def complete_round(session: RoundSession) -> Optional[SettlementResult]:
    """Turn an ended session into an attempt, exactly once per session.

    The session stays registered until the attempt is stored, so a failed
    submission is retried on the next read, answer or timer tick.
    """
    with session.lock:
        session.poll()
        if session.state != ENDED or session.submitted:
            return None
        outcome = session.outcome
        current_app.logger.info(
            f"[round-end] round={session.id} reason={outcome.reason} score={outcome.score} seconds={outcome.seconds_used}"
        )
        try:
            result = submit_attempt(
                session.challenge_id,
                session.user_id,
                outcome.score,
                outcome.questions_answered,
                outcome.seconds_used,
            )
        except AlreadySubmitted:
            # Stored by an earlier call whose settlement failed
            result = try_settle(session.challenge_id)
        session.submitted = True
    registry.discard(session)
    return result


# ---- Queries ----

def list_challenges(user_id: str, status: Optional[str] = None) -> List[Dict]:
    challenges = store.list_for_user(user_id, status)
    if not challenges:
        return []

    user_ids = {uid for c in challenges for uid in c.participants}
    subject_ids = {c.subject_id for c in challenges}
    profiles = {p.id: p for p in Profile.query.filter(Profile.id.in_(user_ids)).all()}
    subjects = {s.id: s for s in Subject.query.filter(Subject.id.in_(subject_ids)).all()}
    attempts = {}
    for a in ChallengeAttempt.query.filter(ChallengeAttempt.challenge_id.in_([c.id for c in challenges])).all():
        attempts[(a.challenge_id, a.user_id)] = a

    return [_summary(c, user_id, profiles, subjects, attempts) for c in challenges]


def list_pending(user_id: str) -> List[Dict]:
    return list_challenges(user_id, PENDING)


def list_completed(user_id: str) -> List[Dict]:
    return list_challenges(user_id, COMPLETED)


def _summary(challenge, user_id, profiles, subjects, attempts) -> Dict:
    opponent_id = challenge.other_participant(user_id)

    def _name(uid):
        profile = profiles.get(uid)
        return profile.display_name if profile else 'Unknown'

    def _attempt(uid):
        a = attempts.get((challenge.id, uid))
        if a is None:
            return None
        return {'score': a.score, 'questions_answered': a.questions_answered, 'seconds_used': a.seconds_used}

    subject = subjects.get(challenge.subject_id)
    my_attempt = _attempt(user_id)
    data = challenge.to_dict()
    data.update({
        'challenger_name': _name(challenge.challenger_user_id),
        'opponent_name': _name(challenge.opponent_user_id),
        'rival_user_id': opponent_id,
        'rival_name': _name(opponent_id),
        'subject_name': subject.name if subject else 'Unknown',
        'my_attempt': my_attempt,
        'opponent_attempt': _attempt(opponent_id),
        'can_play': challenge.status == PENDING and my_attempt is None,
        'result': _result_for(challenge, user_id),
        'points_delta': _points_delta(challenge, user_id),
    })
    return data


def _result_for(challenge, user_id):
    if challenge.status != COMPLETED:
        return None
    if challenge.is_draw:
        return 'draw'
    return 'won' if challenge.winner_user_id == user_id else 'lost'


def _points_delta(challenge, user_id):
    result = _result_for(challenge, user_id)
    if result is None or result == 'draw':
        return 0
    return challenge.stake_points if result == 'won' else -challenge.stake_points
