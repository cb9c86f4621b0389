import time
from typing import Callable, Set

from lightning import socketio
from .rounds import RoundSession


_scheduled_rounds: Set[str] = set()


def schedule_round_timer(app, session: RoundSession, on_expire: Callable[[RoundSession], None]) -> None:
    """Fire ``on_expire`` once the session's countdown has run out.

    - No-ops in TESTING mode (sessions are still expired lazily on access)
    - Ensures a single timer per session
    - ``on_expire`` runs inside an app context and must tolerate a session
      that already ended or was cancelled in the meantime
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    if session.id in _scheduled_rounds:
        app.logger.info(f"[timer-skip] round={session.id} already scheduled")
        return
    _scheduled_rounds.add(session.id)

    delay = max(0.0, session.duration - session.elapsed()) + 0.05
    app.logger.info(
        f"[timer-set] round={session.id} challenge={session.challenge_id} user={session.user_id} delay={delay:.2f}s"
    )

    def _worker(sess: RoundSession, wait: float):
        try:
            hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        except (TypeError, ValueError):
            hb = 0
        if hb > 0:
            slept = 0.0
            while slept < wait:
                step = min(hb, wait - slept)
                time.sleep(step)
                slept += step
                app.logger.info(f"[timer-heartbeat] round={sess.id} remaining={max(0.0, wait - slept):.1f}s")
        else:
            time.sleep(wait)
        _scheduled_rounds.discard(sess.id)
        with app.app_context():
            app.logger.info(f"[timer-fire] round={sess.id} state={sess.state}")
            try:
                on_expire(sess)
            except Exception:
                app.logger.exception(f"[timer-error] round={sess.id}")

    socketio.start_background_task(_worker, session, delay)
