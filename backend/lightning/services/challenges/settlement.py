"""Settlement: decide the winner once both attempts exist and move the stake.

The status compare-and-swap (``store.mark_completed``) is the linearization
point. The CAS, the ledger row and both balance updates are flushed in one
transaction and committed together; if anything fails the whole unit rolls
back and the challenge stays pending for the next ``try_settle``.
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from lightning import db
from lightning.models import COMPLETED
from . import balances, store
from .errors import AlreadyCompleted
from .notify import notify, CHALLENGE_COMPLETED

NOT_READY = 'not_ready'
SETTLED = 'settled'
ALREADY_SETTLED = 'already_settled'


@dataclass(frozen=True)
class Outcome:
    winner_id: Optional[str]
    loser_id: Optional[str]
    is_draw: bool


@dataclass(frozen=True)
class SettlementResult:
    outcome: str
    winner_id: Optional[str] = None
    is_draw: Optional[bool] = None

    @property
    def settled(self) -> bool:
        return self.outcome == SETTLED

    def to_dict(self):
        data = {'settled': self.settled, 'outcome': self.outcome}
        if self.settled:
            data['winner_id'] = self.winner_id
            data['is_draw'] = self.is_draw
        return data


def decide_outcome(first, second) -> Outcome:
    """Higher score wins, then lower seconds_used; otherwise a draw.

    Symmetric in its arguments, so storage order never matters.
    """
    if first.score != second.score:
        winner, loser = (first, second) if first.score > second.score else (second, first)
        return Outcome(winner.user_id, loser.user_id, False)
    if first.seconds_used != second.seconds_used:
        winner, loser = (first, second) if first.seconds_used < second.seconds_used else (second, first)
        return Outcome(winner.user_id, loser.user_id, False)
    return Outcome(None, None, True)


def try_settle(challenge_id: str) -> SettlementResult:
    challenge = store.get_challenge(challenge_id)
    if challenge.status == COMPLETED:
        return SettlementResult(ALREADY_SETTLED, challenge.winner_user_id, challenge.is_draw)

    attempts = store.get_attempts(challenge_id)
    if len(attempts) < 2:
        return SettlementResult(NOT_READY)

    by_user = {a.user_id: a for a in attempts}
    outcome = decide_outcome(by_user[challenge.challenger_user_id], by_user[challenge.opponent_user_id])
    stake = challenge.stake_points

    try:
        store.mark_completed(challenge_id, outcome.winner_id, outcome.is_draw)
    except AlreadyCompleted:
        db.session.rollback()
        current_app.logger.info(f"[settle-skip] challenge={challenge_id} already settled by another caller")
        settled = store.refresh_challenge(challenge_id)
        return SettlementResult(ALREADY_SETTLED, settled.winner_user_id, settled.is_draw)

    try:
        if not outcome.is_draw:
            balances.transfer_stake(challenge_id, outcome.winner_id, outcome.loser_id, stake)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[settle-failed] challenge={challenge_id} rolled back")
        raise

    current_app.logger.info(
        f"[settle] challenge={challenge_id} winner={outcome.winner_id} draw={outcome.is_draw} stake={stake}"
    )

    settled = store.refresh_challenge(challenge_id)
    notify(CHALLENGE_COMPLETED, {
        'challenge_id': challenge_id,
        'challenger_user_id': settled.challenger_user_id,
        'opponent_user_id': settled.opponent_user_id,
        'winner_user_id': settled.winner_user_id,
        'is_draw': settled.is_draw,
        'stake_points': stake,
        'scores': {a.user_id: a.score for a in attempts},
    })
    return SettlementResult(SETTLED, outcome.winner_id, outcome.is_draw)
