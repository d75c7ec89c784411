
import pytest
from fastapi import HTTPException

from app.core import timer
from app.core.constants import AttemptEvent, AttemptStatusEnum, TimerStatusEnum
from app.core.exceptions import AttemptClosedError, AttemptNotActiveError, InvalidQuestionError, TransitionConflictError
from app.core.state_machine import InvalidTransitionError
from app.crud.answer import answer as crud_answer
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_audit import attempt_audit as crud_attempt_audit
from app.crud.result import result as crud_result
from app.models.answer import Answer
from app.models.attempt import Attempt
from app.models.result import Result
from app.schemas.answer import AnswerSave
from app.schemas.attempt import AttemptCreate, AttemptStartRequest, CameraUpdate, PositionUpdate
from app.schemas.exam_session import SessionJoinRequest
from app.schemas.question import Question as QuestionOut
from app.services.attempt import attempt_service
from app.services.exam_session import exam_session_service
from app.services.monitoring import monitoring_service
from app.utils.events import event_bus
from tests.helpers.factories import STUDENT_ID, T0, at, default_questions


def start(db, session, context, now=T0, class_level=None):
    return attempt_service.start_attempt(
        db, AttemptStartRequest(session_id=session.id, class_level=class_level), context, now=now
    )

def save(db, attempt_id, question_id, answer, context, now):
    return attempt_service.save_answer(
        db, attempt_id, AnswerSave(question_id=question_id, answer=answer), context, now=now
    )

def audit_trail(db, attempt_id):
    return [(e.to_status, e.reason) for e in crud_attempt_audit.get_by_attempt(db, attempt_id=attempt_id)]

def spy_rollbacks(db, monkeypatch):
    """Record full-session rollbacks; a savepoint rollback does not go through Session.rollback."""
    calls = []
    real_rollback = db.rollback

    def recording_rollback():
        calls.append(True)
        real_rollback()

    monkeypatch.setattr(db, "rollback", recording_rollback)
    return calls


def test_timer_warns_then_expires_on_read(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    assert started.remaining_seconds == 1800
    assert started.resumed is False

    reading = attempt_service.get_timer(db_session, started.attempt_id, student_context, now=at(1790))
    assert reading.remaining_seconds == 10
    assert reading.timer_status == TimerStatusEnum.WARNING
    assert reading.attempt_status == AttemptStatusEnum.IN_PROGRESS

    reading = attempt_service.get_timer(db_session, started.attempt_id, student_context, now=at(1805))
    assert reading.remaining_seconds == 0
    assert reading.timer_status == TimerStatusEnum.EXPIRED

    attempt = db_session.get(Attempt, started.attempt_id)
    assert timer.as_utc(attempt.submitted_at) == at(1805)
    assert attempt.status == AttemptStatusEnum.COMPLETED
    assert audit_trail(db_session, attempt.id) == [
        ("in_progress", "student_start"),
        ("expired", "time_exhausted"),
        ("completed", "finalized"),
    ]


def test_save_after_expiry_is_rejected_and_not_written(db_session, exam, exam_session, student_context):
    first_question, second_question = exam.questions[0].id, exam.questions[1].id
    started = start(db_session, exam_session, student_context)
    save(db_session, started.attempt_id, first_question, "0", student_context, now=at(60))

    with pytest.raises(AttemptNotActiveError) as exc_info:
        save(db_session, started.attempt_id, second_question, "2", student_context, now=at(1801))

    assert exc_info.value.status_code == 409
    assert exc_info.value.context["attempt_id"] == started.attempt_id
    assert crud_answer.get_by_attempt_and_question(
        db_session, attempt_id=started.attempt_id, question_id=second_question
    ) is None
    kept = crud_answer.get_by_attempt_and_question(
        db_session, attempt_id=started.attempt_id, question_id=first_question
    )
    assert kept.answer_text == "0"
    assert ("expired", "time_exhausted") in audit_trail(db_session, started.attempt_id)


def test_saving_twice_overwrites_one_answer_row(db_session, exam, exam_session, student_context):
    question_id = exam.questions[0].id
    started = start(db_session, exam_session, student_context)

    save(db_session, started.attempt_id, question_id, "first", student_context, now=at(10))
    save(db_session, started.attempt_id, question_id, "second", student_context, now=at(20))

    rows = db_session.query(Answer).filter(Answer.attempt_id == started.attempt_id).all()
    assert len(rows) == 1
    assert rows[0].answer_text == "second"
    assert timer.as_utc(rows[0].answered_at) == at(20)


def test_save_rejects_question_from_another_exam(db_session, exam_factory, exam_session, student_context):
    other_exam = exam_factory(questions=default_questions(1))
    started = start(db_session, exam_session, student_context)

    with pytest.raises(InvalidQuestionError):
        save(db_session, started.attempt_id, other_exam.questions[0].id, "0", student_context, now=at(5))


def test_only_the_owner_can_save(db_session, exam, exam_session, student_context, other_student_context):
    started = start(db_session, exam_session, student_context)

    with pytest.raises(HTTPException) as exc_info:
        save(db_session, started.attempt_id, exam.questions[0].id, "0", other_student_context, now=at(5))
    assert exc_info.value.status_code == 403


def test_repeated_join_and_start_reuse_one_attempt(db_session, exam_session, student_context):
    join_in = SessionJoinRequest(session_code=exam_session.session_code)
    joined_once = exam_session_service.join_session(db_session, join_in, student_context, now=T0)
    joined_twice = exam_session_service.join_session(db_session, join_in, student_context, now=T0)
    first = start(db_session, exam_session, student_context, now=at(1))
    second = start(db_session, exam_session, student_context, now=at(2))

    assert joined_once.attempt_id == joined_twice.attempt_id == first.attempt_id == second.attempt_id
    assert db_session.query(Attempt).count() == 1


def test_concurrent_insert_collision_returns_existing_row(db_session, exam_session, student_context, monkeypatch):
    joined = exam_session_service.join_session(
        db_session, SessionJoinRequest(session_code=exam_session.session_code), student_context, now=T0
    )
    real_get_current = crud_attempt.get_current
    calls = {"n": 0}

    def stale_get_current(db, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_get_current(db, **kwargs)

    monkeypatch.setattr(crud_attempt, "get_current", stale_get_current)
    rollbacks = spy_rollbacks(db_session, monkeypatch)
    attempt, created = crud_attempt.get_or_create_current(
        db_session,
        obj_in=AttemptCreate(
            session_id=exam_session.id,
            student_id=STUDENT_ID,
            exam_id=exam_session.exam_id,
            allotted_duration_seconds=1800,
        ),
    )

    assert created is False
    assert attempt.id == joined.attempt_id
    assert db_session.query(Attempt).count() == 1
    assert rollbacks == []


def test_answer_insert_collision_updates_inside_the_same_transaction(
    db_session, exam, exam_session, student_context, monkeypatch
):
    question_id = exam.questions[0].id
    started = start(db_session, exam_session, student_context)
    save(db_session, started.attempt_id, question_id, "first", student_context, now=at(10))

    real_lookup = crud_answer.get_by_attempt_and_question
    calls = {"n": 0}

    def stale_lookup(db, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_lookup(db, **kwargs)

    monkeypatch.setattr(crud_answer, "get_by_attempt_and_question", stale_lookup)
    rollbacks = spy_rollbacks(db_session, monkeypatch)

    saved = save(db_session, started.attempt_id, question_id, "second", student_context, now=at(20))

    assert saved.answer_text == "second"
    assert rollbacks == []
    rows = db_session.query(Answer).filter(Answer.attempt_id == started.attempt_id).all()
    assert [(r.question_id, r.answer_text) for r in rows] == [(question_id, "second")]


def test_resume_keeps_the_original_anchor(db_session, exam_session, student_context):
    first = start(db_session, exam_session, student_context, now=T0)
    resumed = start(db_session, exam_session, student_context, now=at(300))

    assert resumed.resumed is True
    assert resumed.attempt_id == first.attempt_id
    assert resumed.anchor_start_at == T0
    assert resumed.remaining_seconds == 1500


def test_start_after_allotment_elapsed_closes_attempt(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context, now=T0)

    with pytest.raises(AttemptClosedError) as exc_info:
        start(db_session, exam_session, student_context, now=at(2000))
    assert exc_info.value.context["attempt_id"] == started.attempt_id

    with pytest.raises(AttemptClosedError):
        start(db_session, exam_session, student_context, now=at(2001))


def test_double_submit_scores_once(db_session, exam, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    save(db_session, started.attempt_id, exam.questions[0].id, "0", student_context, now=at(30))

    first = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(600))
    second = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(700))

    assert first.already_closed is False
    assert first.finalized is True
    assert first.status == AttemptStatusEnum.COMPLETED
    assert second.already_closed is True
    assert second.status == AttemptStatusEnum.COMPLETED
    assert db_session.query(Result).filter(Result.attempt_id == started.attempt_id).count() == 1
    assert [t for t in audit_trail(db_session, started.attempt_id) if t[0] == "submitted"] == [
        ("submitted", "student_submit")
    ]


def test_result_is_hidden_until_released(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    submitted = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))

    assert submitted.finalized is True
    assert submitted.result_available is False
    assert submitted.result is None


def test_result_is_returned_when_revealed_immediately(db_session, exam, session_factory, student_context):
    session = session_factory(exam, reveal_results_immediately=True)
    started = start(db_session, session, student_context)
    submitted = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))

    assert submitted.result_available is True
    assert submitted.result.attempt_id == started.attempt_id


def test_score_uses_every_question_as_denominator(db_session, exam_factory, session_factory, student_context):
    exam = exam_factory(questions=default_questions(10, points=2))
    session = session_factory(exam)
    started = start(db_session, session, student_context)
    questions = exam.questions

    for i, question in enumerate(questions[:5]):
        save(db_session, started.attempt_id, question.id, str(i + i), student_context, now=at(10 + i))
    save(db_session, started.attempt_id, questions[5].id, "wrong", student_context, now=at(20))

    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(900))
    result = crud_result.get_by_attempt(db_session, attempt_id=started.attempt_id)

    assert result.total_questions == 10
    assert result.total_points == 20
    assert result.points_earned == 10
    assert result.correct_answers == 5
    assert result.percentage_score == 50.0
    assert result.passed is True


def test_submit_at_exact_deadline_closes_as_expired(db_session, exam, exam_session, student_context):
    started = start(db_session, exam_session, student_context)

    with pytest.raises(AttemptNotActiveError):
        save(db_session, started.attempt_id, exam.questions[0].id, "0", student_context, now=at(1800))

    submitted = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(1800))
    attempt = db_session.get(Attempt, started.attempt_id)
    trail = audit_trail(db_session, started.attempt_id)

    assert submitted.status == AttemptStatusEnum.COMPLETED
    assert ("expired", "time_exhausted") in trail
    assert all(to_status != "submitted" for to_status, _ in trail)
    assert timer.as_utc(attempt.submitted_at) == at(1800)


def test_submit_before_start_is_a_conflict(db_session, exam_session, student_context):
    joined = exam_session_service.join_session(
        db_session, SessionJoinRequest(session_code=exam_session.session_code), student_context, now=T0
    )
    with pytest.raises(TransitionConflictError):
        attempt_service.submit_attempt(db_session, joined.attempt_id, student_context, now=T0)


def test_questions_are_served_without_answer_keys(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    questions = attempt_service.get_questions(db_session, started.attempt_id, student_context)
    served = [QuestionOut.model_validate(q).model_dump() for q in questions]

    assert [q["position"] for q in served] == [0, 1, 2]
    assert all("correct_answer" not in q for q in served)


def test_position_must_point_at_a_question(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)

    moved = attempt_service.update_position(
        db_session, started.attempt_id, PositionUpdate(current_question_index=2), student_context, now=at(5)
    )
    assert moved.current_question_index == 2

    with pytest.raises(InvalidQuestionError):
        attempt_service.update_position(
            db_session, started.attempt_id, PositionUpdate(current_question_index=3), student_context, now=at(6)
        )


def test_persisted_attempt_rejects_backward_status_and_anchor_rewrite(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))
    attempt = db_session.get(Attempt, started.attempt_id)

    with pytest.raises(InvalidTransitionError):
        attempt.status = AttemptStatusEnum.IN_PROGRESS
    with pytest.raises(ValueError):
        attempt.anchor_start_at = at(120)
    attempt.anchor_start_at = T0


def test_camera_is_released_once_when_attempt_closes(db_session, exam, session_factory, student_context):
    revoked = []
    event_bus.subscribe(AttemptEvent.MONITORING_REVOKED.value, revoked.append)
    session = session_factory(exam, camera_monitoring_required=True)

    started = start(db_session, session, student_context)
    assert started.camera_enabled is True

    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))
    attempt = db_session.get(Attempt, started.attempt_id)

    assert attempt.camera_enabled is False
    assert [event["attempt_id"] for event in revoked] == [started.attempt_id]
    assert revoked[0]["reason"] == "submitted"


def test_camera_cannot_be_granted_after_close(db_session, exam, session_factory, student_context):
    session = session_factory(exam, camera_monitoring_required=True)
    started = start(db_session, session, student_context)

    released = attempt_service.set_camera(
        db_session, started.attempt_id, CameraUpdate(enabled=False), student_context, now=at(10)
    )
    assert released.camera_enabled is False

    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))
    with pytest.raises(AttemptNotActiveError):
        attempt_service.set_camera(
            db_session, started.attempt_id, CameraUpdate(enabled=True), student_context, now=at(70)
        )


def test_instructor_can_disable_every_camera_in_a_session(
    db_session, exam, session_factory, student_context, other_student_context
):
    session = session_factory(exam, camera_monitoring_required=True)
    first = start(db_session, session, student_context)
    second = start(db_session, session, other_student_context)

    disabled = monitoring_service.disable_session_cameras(db_session, session.id)

    assert sorted(disabled) == sorted([first.attempt_id, second.attempt_id])
    for attempt_id in disabled:
        attempt = db_session.get(Attempt, attempt_id)
        assert attempt.camera_enabled is False
        assert attempt.status == AttemptStatusEnum.IN_PROGRESS
