from flask_socketio import join_room, leave_room, emit
from blitz import socketio
from blitz.services.trivia.round import RoundError
from flask import current_app, request
from typing import Dict, Any
import time


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # A round whose owning page went away is discarded, after a grace period
    # outside tests so a page reload can reattach
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    round_id = ctx.get('round_id')
    if ctx.get('is_owner') and round_id:
        _owner_count[round_id] = max(0, _owner_count.get(round_id, 0) - 1)
        if current_app.config.get('TESTING'):
            if _owner_count.get(round_id, 0) == 0:
                _end_round(current_app._get_current_object(), round_id)
            return
        _schedule_end_if_no_owner(current_app._get_current_object(), round_id)


def handle_join_round(data):
    round_id = (data or {}).get('round_id')
    is_owner = bool((data or {}).get('is_owner'))
    if not round_id:
        emit('error', {'message': 'round_id is required'})
        return
    registry = current_app.extensions['blitz_rounds']
    try:
        entry = registry.get(round_id)
    except RoundError as exc:
        emit('error', {'message': str(exc)})
        return
    room = f"round:{round_id}"
    join_room(room)
    _sid_to_ctx[_get_sid()] = {'round_id': round_id, 'is_owner': is_owner}
    if is_owner:
        _owner_count[round_id] = _owner_count.get(round_id, 0) + 1
        _cancel_scheduled_end(round_id)
    emit('joined', {'room': room})
    emit('round_update', entry.to_dict())


def handle_leave_round(data):
    round_id = (data or {}).get('round_id')
    if not round_id:
        emit('error', {'message': 'round_id is required'})
        return
    room = f"round:{round_id}"
    leave_room(room)
    emit('left', {'room': room})
    ctx = _sid_to_ctx.get(_get_sid())
    if ctx and ctx.get('is_owner') and ctx.get('round_id') == round_id:
        # Explicit leave by the owner: discard immediately
        _sid_to_ctx.pop(_get_sid(), None)
        _end_round(current_app._get_current_object(), round_id)


def handle_ping(data):
    emit('pong', data or {})

# ---- Round owner lifecycle helpers ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_owner_count: Dict[str, int] = {}
_end_deadline: Dict[str, float] = {}

def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]

def _end_round(app, round_id: str) -> None:
    """Discard the round and tell any remaining watchers."""
    socketio.emit('round_ended', {'round_id': round_id}, to=f"round:{round_id}", namespace='/ws')
    try:
        app.extensions['blitz_rounds'].discard(round_id)
    finally:
        _owner_count.pop(round_id, None)
        _end_deadline.pop(round_id, None)

def _schedule_end_if_no_owner(app, round_id: str) -> None:
    if _owner_count.get(round_id, 0) > 0:
        return
    delay_sec = float(app.config.get('ROUND_DISCONNECT_GRACE_SEC', 5))
    _end_deadline[round_id] = time.time() + delay_sec

    def _runner(rid: str, deadline: float):
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            socketio.sleep(sleep_for)
        if _owner_count.get(rid, 0) == 0 and _end_deadline.get(rid) == deadline:
            with app.app_context():
                _end_round(app, rid)

    socketio.start_background_task(_runner, round_id, _end_deadline[round_id])

def _cancel_scheduled_end(round_id: str) -> None:
    _end_deadline.pop(round_id, None)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('join_round', handle_join_round, namespace='/ws')
    socketio.on_event('leave_round', handle_leave_round, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('join_round', handle_join_round, namespace='/')
        socketio.on_event('leave_round', handle_leave_round, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
