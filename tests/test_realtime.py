import pytest

from app.core.constants import AttemptEvent
from app.realtime.websockets import _bridge_event_bus, _can_watch, attempt_room
from app.schemas.attempt import AttemptStartRequest
from app.services.attempt import attempt_service
from app.utils.events import event_bus
from tests.helpers.factories import INSTRUCTOR_ID, OTHER_INSTRUCTOR_ID, OTHER_STUDENT_ID, STUDENT_ID, T0


class RecordingServer:
    def __init__(self):
        self.emitted = []

    async def emit(self, event, data, room=None):
        self.emitted.append((event, data, room))


@pytest.mark.asyncio
async def test_attempt_events_are_pushed_to_the_attempt_room():
    server = RecordingServer()
    _bridge_event_bus(server)

    await event_bus.publish(AttemptEvent.CLOSED.value, {"attempt_id": 5, "status": "expired"})
    await event_bus.publish(AttemptEvent.MONITORING_REVOKED.value, {"attempt_id": 5, "reason": "expired"})

    assert [(event, room) for event, _, room in server.emitted] == [
        ("attempt_closed", "attempt:5"),
        ("monitoring_revoked", "attempt:5"),
    ]


@pytest.mark.asyncio
async def test_rebridging_replaces_the_previous_server():
    stale, fresh = RecordingServer(), RecordingServer()
    _bridge_event_bus(stale)
    _bridge_event_bus(fresh)

    await event_bus.publish(AttemptEvent.CLOSED.value, {"attempt_id": 9})

    assert stale.emitted == []
    assert len(fresh.emitted) == 1


def test_watchers_are_the_student_and_the_session_instructor(db_session, exam_session, student_context):
    started = attempt_service.start_attempt(
        db_session, AttemptStartRequest(session_id=exam_session.id), student_context, now=T0
    )

    assert attempt_room(started.attempt_id) == f"attempt:{started.attempt_id}"
    assert _can_watch(STUDENT_ID, "student", started.attempt_id) is True
    assert _can_watch(INSTRUCTOR_ID, "instructor", started.attempt_id) is True
    assert _can_watch(OTHER_STUDENT_ID, "student", started.attempt_id) is False
    assert _can_watch(OTHER_INSTRUCTOR_ID, "instructor", started.attempt_id) is False
    assert _can_watch(STUDENT_ID, "student", started.attempt_id + 100) is False


@pytest.mark.asyncio
async def test_proctoring_events_reach_the_attempt_room():
    server = RecordingServer()
    _bridge_event_bus(server)

    await event_bus.publish(AttemptEvent.INCIDENT_LOGGED.value, {"attempt_id": 4, "severity": "high"})
    await event_bus.publish(AttemptEvent.WARNING_SENT.value, {"attempt_id": 4, "message": "Eyes front."})

    assert [(event, room) for event, _, room in server.emitted] == [
        ("proctoring_incident", "attempt:4"),
        ("student_warning", "attempt:4"),
    ]
