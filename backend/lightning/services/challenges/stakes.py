"""Stake policy: how many points a player may wager."""

import math

from .errors import ValidationError, StakeExceedsBalance

MIN_STAKE = 10
STAKE_CAP_RATIO = 0.30
STAKE_CANDIDATES = (10, 25, 50)

# Revenge / rematch picker
REVENGE_BUMP = 10
REVENGE_STEP = 5
REVENGE_MIN = 5


def max_stake(weekly_points: int, floor: int = MIN_STAKE, ratio: float = STAKE_CAP_RATIO) -> int:
    """Larger of the floor and 30% of the weekly balance (rounded down)."""
    return max(floor, math.floor(max(0, weekly_points) * ratio))


def allowed_stakes(weekly_points: int, floor: int = MIN_STAKE, ratio: float = STAKE_CAP_RATIO) -> list:
    cap = max_stake(weekly_points, floor=floor, ratio=ratio)
    return [s for s in STAKE_CANDIDATES if s <= cap]


def validate_stake(stake, weekly_points: int) -> int:
    """Check a stake at creation time. Returns the stake as an int."""
    if isinstance(stake, bool) or not isinstance(stake, int):
        raise ValidationError('Stake must be a whole number of points')
    if stake <= 0:
        raise ValidationError('Stake must be positive')
    if stake > weekly_points:
        raise StakeExceedsBalance(
            f'Stake exceeds available points ({stake} > {weekly_points} weekly points)'
        )
    return stake


def revenge_cap(previous_stake: int, weekly_points: int, floor: int = MIN_STAKE,
                ratio: float = STAKE_CAP_RATIO) -> int:
    return max(previous_stake, max_stake(weekly_points, floor=floor, ratio=ratio))


def default_revenge_stake(previous_stake: int, weekly_points: int, floor: int = MIN_STAKE,
                          ratio: float = STAKE_CAP_RATIO) -> int:
    cap = revenge_cap(previous_stake, weekly_points, floor=floor, ratio=ratio)
    return min(previous_stake + REVENGE_BUMP, cap)


def adjust_revenge_stake(current: int, delta: int, previous_stake: int, weekly_points: int,
                         floor: int = MIN_STAKE, ratio: float = STAKE_CAP_RATIO) -> int:
    """Move the picker by ``delta`` and clamp to ``[5, cap]``."""
    cap = revenge_cap(previous_stake, weekly_points, floor=floor, ratio=ratio)
    return max(REVENGE_MIN, min(cap, current + delta))


def validate_revenge_stake(stake, previous_stake: int, weekly_points: int, floor: int = MIN_STAKE,
                           ratio: float = STAKE_CAP_RATIO) -> int:
    """A revenge stake must be reachable from the default in steps of 5 within ``[5, cap]``."""
    if isinstance(stake, bool) or not isinstance(stake, int):
        raise ValidationError('Stake must be a whole number of points')
    cap = revenge_cap(previous_stake, weekly_points, floor=floor, ratio=ratio)
    default = default_revenge_stake(previous_stake, weekly_points, floor=floor, ratio=ratio)
    if stake < REVENGE_MIN or stake > cap:
        raise ValidationError(f'Revenge stake must be between {REVENGE_MIN} and {cap} points')
    if (stake - default) % REVENGE_STEP != 0 and stake not in (REVENGE_MIN, cap):
        raise ValidationError(f'Revenge stake must move in steps of {REVENGE_STEP} points')
    return stake
