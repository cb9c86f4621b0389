from flask_socketio import join_room, leave_room, emit
from flask import request
from typing import Dict


_sid_to_user: Dict[str, str] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    _sid_to_user.pop(_get_sid(), None)


def handle_join_user(data):
    """Subscribe this socket to challenge events for one player."""
    user_id = (data or {}).get('user_id')
    if not user_id:
        emit('error', {'message': 'user_id is required'})
        return
    previous = _sid_to_user.get(_get_sid())
    if previous and previous != str(user_id):
        leave_room(f"user:{previous}")
    room = f"user:{user_id}"
    join_room(room)
    _sid_to_user[_get_sid()] = str(user_id)
    emit('joined', {'room': room})


def handle_leave_user(data):
    user_id = (data or {}).get('user_id')
    if not user_id:
        emit('error', {'message': 'user_id is required'})
        return
    if _sid_to_user.get(_get_sid()) != str(user_id):
        emit('error', {'message': f'not joined as {user_id}'})
        return
    room = f"user:{user_id}"
    leave_room(room)
    _sid_to_user.pop(_get_sid(), None)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from lightning import socketio

    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_user': handle_join_user,
        'leave_user': handle_leave_user,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
