import random

import pytest

from lightning.services.challenges import rounds
from lightning.services.challenges.errors import NoContentAvailable, RoundNotFound, RoundStateError
from lightning.services.challenges.rounds import RoundQuestion, RoundRegistry, RoundSession


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _questions(n):
    return [RoundQuestion(id=f'q{i}', text=f'Question {i}', options=('a', 'b'), correct_answer='a') for i in range(n)]


def _session(clock, n=5, duration=30, feedback=0.5):
    session = RoundSession('c1', 'alice', duration=duration, feedback_sec=feedback, clock=clock)
    session.load(_questions(n), rng=random.Random(7))
    return session


def test_load_requires_questions():
    session = RoundSession('c1', 'alice', clock=FakeClock())
    with pytest.raises(NoContentAvailable):
        session.load([])
    assert session.state == rounds.LOADING


def test_countdown_has_one_second_resolution():
    clock = FakeClock()
    session = _session(clock)
    assert session.state == rounds.ACTIVE
    assert session.time_left() == 30
    clock.advance(0.9)
    assert session.time_left() == 30
    clock.advance(0.2)
    assert session.time_left() == 29
    clock.advance(28.5)
    assert session.time_left() == 1


def test_correct_answers_score_and_feedback_pauses_before_advancing():
    clock = FakeClock()
    session = _session(clock)
    first = session.current_question
    feedback = session.answer('a')
    assert feedback['correct'] is True
    assert session.state == rounds.FEEDBACK
    assert session.score == 1

    with pytest.raises(RoundStateError):
        session.answer('a')

    clock.advance(0.5)
    assert session.poll() == rounds.ACTIVE
    assert session.current_question != first

    assert session.answer('b')['correct'] is False
    assert session.score == 1
    assert session.answered == 2


def test_exhausted_pool_ends_early_with_current_tally():
    clock = FakeClock()
    session = _session(clock, n=3)
    for choice in ('a', 'b', 'a'):
        clock.advance(1.2)
        session.poll()
        session.answer(choice)
    assert session.state == rounds.ENDED
    assert session.outcome.reason == rounds.END_EXHAUSTED
    assert session.outcome.score == 2
    assert session.outcome.questions_answered == 3
    assert session.outcome.seconds_used == pytest.approx(3.6)


def test_countdown_expiry_ends_round_and_clamps_seconds_used():
    clock = FakeClock()
    session = _session(clock)
    session.answer('a')
    clock.advance(45)
    assert session.poll() == rounds.ENDED
    assert session.outcome.reason == rounds.END_TIMEOUT
    assert session.outcome.score == 1
    assert session.outcome.questions_answered == 1
    assert session.outcome.seconds_used == 30.0

    with pytest.raises(RoundStateError):
        session.answer('a')


def test_cancel_produces_no_outcome():
    clock = FakeClock()
    session = _session(clock)
    session.answer('a')
    session.cancel()
    assert session.state == rounds.CANCELLED
    assert session.outcome is None


def test_cancel_after_end_is_rejected():
    clock = FakeClock()
    session = _session(clock, n=1)
    session.answer('a')
    with pytest.raises(RoundStateError):
        session.cancel()


def test_question_order_is_fixed_once_drawn():
    clock = FakeClock()
    session = _session(clock, n=6)
    order = [q.id for q in session.questions]
    assert sorted(order) == [f'q{i}' for i in range(6)]
    with pytest.raises(RoundStateError):
        session.load(_questions(6))
    assert [q.id for q in session.questions] == order


def test_registry_keeps_one_session_per_player():
    registry = RoundRegistry()
    first = _session(FakeClock())
    second = _session(FakeClock())
    assert registry.add(first) is None
    assert registry.add(second) is first
    assert registry.for_player('c1', 'alice') is second
    with pytest.raises(RoundNotFound):
        registry.get(first.id)
    registry.discard(second)
    assert len(registry) == 0


def test_to_dict_hides_the_correct_answer():
    session = _session(FakeClock())
    view = session.to_dict()
    assert view['state'] == rounds.ACTIVE
    assert 'correct_answer' not in view['question']
    assert view['total_questions'] == 5


def test_round_timer_submits_expired_round(flask_app, make_player, monkeypatch):
    from lightning.services.challenges import orchestrator, scheduler, store

    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    clock = FakeClock()
    monkeypatch.setattr(scheduler.time, 'sleep', clock.advance)
    monkeypatch.setattr(scheduler.socketio, 'start_background_task', lambda fn, *args: fn(*args))
    monkeypatch.setattr(orchestrator, 'load_question_pool', lambda *args, **kwargs: _questions(3))

    make_player('alice', weekly=100)
    make_player('bob', weekly=100)
    challenge = store.create_pending_challenge('alice', 'bob', 'cohort-1', 'algebra', 10)
    session = orchestrator.start_round(challenge.id, 'alice', clock=clock)

    assert session.state == rounds.ENDED
    assert session.outcome.reason == rounds.END_TIMEOUT
    assert session.submitted is True
    attempt = store.get_attempt(challenge.id, 'alice')
    assert (attempt.score, attempt.questions_answered, attempt.seconds_used) == (0, 0, 30.0)
    assert session.id not in scheduler._scheduled_rounds


def _started_round(make_player, monkeypatch, clock, n=2):
    from lightning.services.challenges import orchestrator, store

    monkeypatch.setattr(orchestrator, 'load_question_pool', lambda *args, **kwargs: _questions(n))
    make_player('alice', weekly=100, total=100)
    make_player('bob', weekly=100, total=100)
    challenge = store.create_pending_challenge('alice', 'bob', 'cohort-1', 'algebra', 10)
    return challenge.id, orchestrator.start_round(challenge.id, 'alice', clock=clock)


def test_failed_round_submission_is_kept_for_retry(flask_app, make_player, monkeypatch):
    from lightning.services.challenges import orchestrator, settlement, store

    clock = FakeClock()
    challenge_id, session = _started_round(make_player, monkeypatch, clock)
    record_attempt = store.record_attempt
    calls = []

    def _flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError('database unavailable')
        return record_attempt(*args, **kwargs)

    monkeypatch.setattr(store, 'record_attempt', _flaky)
    orchestrator.answer_round(session.id, 'alice', 'a')
    clock.advance(1.5)
    with pytest.raises(RuntimeError):
        orchestrator.answer_round(session.id, 'alice', 'a')

    assert session.state == rounds.ENDED
    assert session.submitted is False
    assert store.get_attempt(challenge_id, 'alice') is None

    same, result = orchestrator.get_round(session.id, 'alice')
    assert same is session
    assert result.outcome == settlement.NOT_READY
    assert session.submitted is True
    attempt = store.get_attempt(challenge_id, 'alice')
    assert (attempt.score, attempt.questions_answered, attempt.seconds_used) == (2, 2, 1.5)
    with pytest.raises(RoundNotFound):
        rounds.registry.get(session.id)


def test_round_retry_settles_after_failed_settlement(flask_app, make_player, balance, monkeypatch):
    from lightning.services.challenges import balances, orchestrator, settlement, store

    clock = FakeClock()
    challenge_id, session = _started_round(make_player, monkeypatch, clock, n=1)
    orchestrator.submit_attempt(challenge_id, 'bob', 0, 1, 5.0)

    def _boom(*args, **kwargs):
        raise RuntimeError('balance store unavailable')

    monkeypatch.setattr(balances, 'transfer_stake', _boom)
    with pytest.raises(RuntimeError):
        orchestrator.answer_round(session.id, 'alice', 'a')
    monkeypatch.undo()
    assert store.get_challenge(challenge_id).status == 'pending'
    assert session.submitted is False

    _, result = orchestrator.get_round(session.id, 'alice')
    assert result.outcome == settlement.ALREADY_SETTLED
    assert result.winner_id == 'alice'
    assert session.submitted is True
    assert balance('alice') == (110, 110)
    assert balance('bob') == (90, 90)
