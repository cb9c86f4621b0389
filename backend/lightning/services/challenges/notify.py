"""Outbound challenge events.

``notify`` is fire-and-forget: it pushes the event to both participants'
Socket.IO rooms and, when ``WEBHOOK_URL`` is configured, posts it to the
webhook. Delivery failures are logged and swallowed so they can never undo a
committed settlement.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import requests
from flask import current_app

from lightning import socketio

CHALLENGE_CREATED = 'challenge_created'
REVENGE_CREATED = 'revenge_created'
REMATCH_CREATED = 'rematch_created'
CHALLENGE_COMPLETED = 'challenge_completed'


def notify(event_type: str, payload: Dict[str, Any]) -> None:
    app = current_app._get_current_object()
    app.logger.info(f"[notify] event={event_type} challenge={payload.get('challenge_id')}")

    recipients = {payload.get('challenger_user_id'), payload.get('opponent_user_id')} - {None}
    try:
        for user_id in sorted(recipients):
            socketio.emit(
                'challenge_event',
                {'event_type': event_type, 'payload': payload},
                to=f"user:{user_id}",
                namespace='/ws',
            )
    except Exception:
        app.logger.exception(f"[notify-push-failed] event={event_type}")

    url = app.config.get('WEBHOOK_URL')
    if not url:
        return
    timeout = float(app.config.get('WEBHOOK_TIMEOUT_SEC', 5))
    body = {
        'event_type': event_type,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        **payload,
    }
    if app.config.get('TESTING'):
        _post_webhook(app, url, body, timeout)
    else:
        socketio.start_background_task(_post_webhook, app, url, body, timeout)


def _post_webhook(app, url: str, body: Dict[str, Any], timeout: float) -> bool:
    try:
        response = requests.post(url, json=body, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        app.logger.warning(f"[webhook-failed] event={body.get('event_type')} error={exc}")
        return False
    app.logger.info(f"[webhook] event={body.get('event_type')} status={response.status_code}")
    return True
