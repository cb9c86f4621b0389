"""Exception hierarchy for the challenge services.

Each error carries a stable ``code`` and the HTTP ``status_code`` the API
layer answers with. "Not ready" settlement is a result value, not an error.
"""


class ChallengeError(Exception):
    """Base exception for challenge lifecycle errors."""
    code = 'challenge_error'
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(ChallengeError):
    """Request failed validation."""
    code = 'validation_error'
    status_code = 400


class StakeExceedsBalance(ValidationError):
    """Stake exceeds available points."""
    code = 'stake_exceeds_balance'


class NoContentAvailable(ChallengeError):
    """No questions available for this subject."""
    code = 'no_content_available'
    status_code = 422


class ChallengeNotFound(ChallengeError):
    """Challenge not found."""
    code = 'challenge_not_found'
    status_code = 404


class RoundNotFound(ChallengeError):
    """Round session not found."""
    code = 'round_not_found'
    status_code = 404


class ConflictError(ChallengeError):
    """Someone else already did this."""
    code = 'conflict'
    status_code = 409


class AlreadySubmitted(ConflictError):
    """An attempt for this player was already submitted."""
    code = 'already_submitted'


class AlreadyCompleted(ConflictError):
    """Challenge is already completed."""
    code = 'already_completed'


class RoundStateError(ConflictError):
    """Round is not accepting this action."""
    code = 'round_state_error'
