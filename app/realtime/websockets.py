from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple
import logging
import socketio
from fastapi import HTTPException
from urllib.parse import parse_qs

from app.core.constants import AttemptEvent
from app.core.database import SessionLocal
from app.crud.attempt import attempt as crud_attempt
from app.utils.deps import context_from_token
from app.utils.events import event_bus

logger = logging.getLogger(__name__)

user_sessions: Dict[str, dict] = {}

_bridged_handlers: List[Tuple[str, Callable]] = []


def attempt_room(attempt_id: int) -> str:
    return f"attempt:{attempt_id}"


def _can_watch(user_id: int, role: str, attempt_id: int) -> bool:
    db = SessionLocal()
    try:
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            return False
        if attempt.student_id == user_id:
            return True
        return role == "instructor" and attempt.session.instructor_id == user_id
    finally:
        db.close()


def _bridge_event_bus(sio_server: socketio.AsyncServer):
    """Forward attempt events from the in-process bus to the attempt's room."""
    for event_type, handler in _bridged_handlers:
        event_bus.unsubscribe(event_type, handler)
    _bridged_handlers.clear()

    async def push_attempt_closed(data: dict):
        await sio_server.emit(AttemptEvent.CLOSED.value, data, room=attempt_room(data["attempt_id"]))

    async def push_monitoring_revoked(data: dict):
        await sio_server.emit(AttemptEvent.MONITORING_REVOKED.value, data, room=attempt_room(data["attempt_id"]))

    async def push_incident(data: dict):
        await sio_server.emit(AttemptEvent.INCIDENT_LOGGED.value, data, room=attempt_room(data["attempt_id"]))

    async def push_warning(data: dict):
        await sio_server.emit(AttemptEvent.WARNING_SENT.value, data, room=attempt_room(data["attempt_id"]))

    for event_type, handler in (
        (AttemptEvent.CLOSED.value, push_attempt_closed),
        (AttemptEvent.MONITORING_REVOKED.value, push_monitoring_revoked),
        (AttemptEvent.INCIDENT_LOGGED.value, push_incident),
        (AttemptEvent.WARNING_SENT.value, push_warning),
    ):
        event_bus.subscribe(event_type, handler)
        _bridged_handlers.append((event_type, handler))


def register_websocket_events(sio_server: socketio.AsyncServer):
    _bridge_event_bus(sio_server)

    @sio_server.event
    async def connect(sid, environ, auth):
        token = None
        if auth and 'token' in auth:
            token = auth['token']
        elif environ.get('QUERY_STRING'):
            query_params = parse_qs(environ.get('QUERY_STRING', ''))
            token = query_params.get('token', [None])[0]

        if not token:
            logger.warning(f"Connection rejected for {sid}: No token")
            return False

        try:
            context = context_from_token(token)
        except HTTPException as exc:
            logger.warning(f"Connection rejected for {sid}: {exc.detail}")
            return False

        user_sessions[sid] = {
            'user_id': context.user_id,
            'role': context.role.value,
            'connected_at': datetime.now(timezone.utc),
            'attempts': set()
        }
        await sio_server.save_session(sid, {'user_id': context.user_id, 'role': context.role.value})
        logger.info(f"Client {sid} connected (User: {context.user_id})")

        await sio_server.emit('connected', {
            'status': 'success',
            'message': 'Connected successfully'
        }, room=sid)
        return True

    @sio_server.event
    async def disconnect(sid):
        user_id = user_sessions.get(sid, {}).get('user_id')
        user_sessions.pop(sid, None)
        logger.info(f"Client {sid} disconnected (User: {user_id})")

    @sio_server.on('watch_attempt')
    async def handle_watch_attempt(sid, data):
        try:
            attempt_id = int((data or {}).get('attempt_id'))
        except (TypeError, ValueError):
            await sio_server.emit('error', {'message': 'attempt_id is required'}, room=sid)
            return

        session = await sio_server.get_session(sid)
        if not session or 'user_id' not in session:
            await sio_server.emit('error', {'message': 'Not authenticated'}, room=sid)
            return

        if not _can_watch(session['user_id'], session.get('role'), attempt_id):
            await sio_server.emit('error', {'message': 'You cannot watch this attempt'}, room=sid)
            return

        await sio_server.enter_room(sid, attempt_room(attempt_id))
        if sid in user_sessions:
            user_sessions[sid]['attempts'].add(attempt_id)
        logger.info(f"Client {sid} watching attempt {attempt_id}")
        await sio_server.emit('watching', {'attempt_id': attempt_id, 'status': 'success'}, room=sid)

    @sio_server.on('unwatch_attempt')
    async def handle_unwatch_attempt(sid, data):
        try:
            attempt_id = int((data or {}).get('attempt_id'))
        except (TypeError, ValueError):
            await sio_server.emit('error', {'message': 'attempt_id is required'}, room=sid)
            return

        await sio_server.leave_room(sid, attempt_room(attempt_id))
        if sid in user_sessions:
            user_sessions[sid]['attempts'].discard(attempt_id)
        await sio_server.emit('unwatched', {'attempt_id': attempt_id, 'status': 'success'}, room=sid)
