"""Lightning round engine.

A ``RoundSession`` is one player's timed quiz attempt for one challenge. It
lives in memory only and walks ``loading -> active -> (answering ->
feedback)* -> ended``; ``cancelled`` is the abandon exit. Time is read from an
injectable clock and evaluated lazily: every public call first applies
whatever the clock says has happened (countdown expiry, end of the feedback
pause), so a background timer is a convenience, not a requirement.
"""

import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func

from lightning.models import Question, generate_id
from .errors import NoContentAvailable, RoundNotFound, RoundStateError

LOADING = 'loading'
ACTIVE = 'active'
ANSWERING = 'answering'
FEEDBACK = 'feedback'
ENDED = 'ended'
CANCELLED = 'cancelled'

END_TIMEOUT = 'timeout'
END_EXHAUSTED = 'exhausted'


@dataclass(frozen=True)
class RoundQuestion:
    id: str
    text: str
    options: Tuple[str, ...]
    correct_answer: str

    @classmethod
    def from_model(cls, question: Question) -> 'RoundQuestion':
        return cls(
            id=question.id,
            text=question.question_text,
            options=tuple(question.option_list),
            correct_answer=question.correct_answer,
        )

    def to_dict(self):
        return {'id': self.id, 'question_text': self.text, 'options': list(self.options)}


@dataclass(frozen=True)
class RoundOutcome:
    score: int
    questions_answered: int
    seconds_used: float
    reason: str

    def to_dict(self):
        return {
            'score': self.score,
            'questions_answered': self.questions_answered,
            'seconds_used': self.seconds_used,
            'reason': self.reason,
        }


def load_question_pool(subject_id: str, question_type: str = 'multiple_choice', limit: int = 20) -> List[RoundQuestion]:
    """Draw up to ``limit`` eligible questions for a subject from the question bank."""
    rows = (
        Question.query
        .filter_by(subject_id=subject_id, question_type=question_type)
        .order_by(func.random())
        .limit(limit)
        .all()
    )
    return [RoundQuestion.from_model(q) for q in rows]


class RoundSession:
    def __init__(self, challenge_id: str, user_id: str, duration: float = 30, feedback_sec: float = 0.5,
                 clock: Callable[[], float] = time.monotonic, session_id: Optional[str] = None):
        self.id = session_id or generate_id()
        self.challenge_id = challenge_id
        self.user_id = user_id
        self.duration = float(duration)
        self.feedback_sec = float(feedback_sec)
        self._clock = clock
        self._lock = threading.RLock()

        self.state = LOADING
        self.questions: Tuple[RoundQuestion, ...] = ()
        self.index = 0
        self.score = 0
        self.answered = 0
        self.started_at: Optional[float] = None
        self.deadline: Optional[float] = None
        self.feedback_until: Optional[float] = None
        self.last_feedback: Optional[dict] = None
        self.outcome: Optional[RoundOutcome] = None
        self.submitted = False

    @property
    def lock(self):
        return self._lock

    def load(self, questions, rng: Optional[random.Random] = None) -> None:
        """Fix the question order and start the countdown."""
        with self._lock:
            if self.state != LOADING:
                raise RoundStateError('Round already loaded')
            pool = list(questions)
            if not pool:
                raise NoContentAvailable('This subject does not have any questions yet')
            (rng or random).shuffle(pool)
            self.questions = tuple(pool)
            self.started_at = self._clock()
            self.deadline = self.started_at + self.duration
            self.state = ACTIVE

    # -- clock ---------------------------------------------------------------

    def elapsed(self, now: Optional[float] = None) -> float:
        if self.started_at is None:
            return 0.0
        now = self._clock() if now is None else now
        return min(self.duration, max(0.0, now - self.started_at))

    def time_left(self, now: Optional[float] = None) -> int:
        """Whole seconds remaining on the countdown."""
        if self.started_at is None:
            return int(self.duration)
        now = self._clock() if now is None else now
        return max(0, int(self.duration) - math.floor(max(0.0, now - self.started_at)))

    def poll(self) -> str:
        """Apply countdown expiry and the end of the feedback pause."""
        with self._lock:
            if self.state in (LOADING, ENDED, CANCELLED):
                return self.state
            now = self._clock()
            if self.time_left(now) <= 0:
                self._end(END_TIMEOUT, now)
            elif self.state == FEEDBACK and now >= self.feedback_until:
                self.index += 1
                self.feedback_until = None
                self.state = ACTIVE
            return self.state

    # -- play ----------------------------------------------------------------

    @property
    def current_question(self) -> Optional[RoundQuestion]:
        if self.state not in (ACTIVE, ANSWERING, FEEDBACK) or self.index >= len(self.questions):
            return None
        return self.questions[self.index]

    def answer(self, choice: str) -> dict:
        with self._lock:
            state = self.poll()
            if state != ACTIVE:
                raise RoundStateError(f'Round is not accepting answers (state={state})')
            self.state = ANSWERING
            now = self._clock()
            question = self.questions[self.index]
            correct = choice == question.correct_answer
            if correct:
                self.score += 1
            self.answered += 1
            self.last_feedback = {
                'question_id': question.id,
                'answer': choice,
                'correct': correct,
                'correct_answer': question.correct_answer,
            }
            if self.index >= len(self.questions) - 1:
                self._end(END_EXHAUSTED, now)
            elif self.time_left(now) <= 0:
                self._end(END_TIMEOUT, now)
            else:
                self.feedback_until = now + self.feedback_sec
                self.state = FEEDBACK
            return dict(self.last_feedback)

    def cancel(self) -> None:
        with self._lock:
            self.poll()
            if self.state == ENDED:
                raise RoundStateError('Round already ended')
            self.state = CANCELLED
            self.outcome = None

    def _end(self, reason: str, now: float) -> None:
        self.state = ENDED
        self.feedback_until = None
        self.outcome = RoundOutcome(
            score=self.score,
            questions_answered=self.answered,
            seconds_used=round(self.elapsed(now), 3),
            reason=reason,
        )

    def to_dict(self):
        with self._lock:
            question = self.current_question
            return {
                'session_id': self.id,
                'challenge_id': self.challenge_id,
                'user_id': self.user_id,
                'state': self.state,
                'score': self.score,
                'questions_answered': self.answered,
                'question_index': self.index,
                'total_questions': len(self.questions),
                'time_left': self.time_left(),
                'duration': self.duration,
                'question': question.to_dict() if question and self.state == ACTIVE else None,
                'feedback': self.last_feedback if self.state in (FEEDBACK, ENDED) else None,
                'outcome': self.outcome.to_dict() if self.outcome else None,
            }


class RoundRegistry:
    """Process-local home of live round sessions, one per (challenge, player)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, RoundSession] = {}
        self._by_player: Dict[Tuple[str, str], str] = {}

    def add(self, session: RoundSession) -> Optional[RoundSession]:
        """Register ``session``; returns the session it replaced, if any."""
        key = (session.challenge_id, session.user_id)
        with self._lock:
            replaced = None
            previous_id = self._by_player.get(key)
            if previous_id:
                replaced = self._sessions.pop(previous_id, None)
            self._sessions[session.id] = session
            self._by_player[key] = session.id
        return replaced

    def get(self, session_id: str) -> RoundSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise RoundNotFound(f'Round {session_id} not found')
        return session

    def for_player(self, challenge_id: str, user_id: str) -> Optional[RoundSession]:
        with self._lock:
            session_id = self._by_player.get((challenge_id, user_id))
            return self._sessions.get(session_id) if session_id else None

    def discard(self, session: RoundSession) -> None:
        with self._lock:
            self._sessions.pop(session.id, None)
            key = (session.challenge_id, session.user_id)
            if self._by_player.get(key) == session.id:
                self._by_player.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._by_player.clear()

    def __len__(self):
        with self._lock:
            return len(self._sessions)


registry = RoundRegistry()
