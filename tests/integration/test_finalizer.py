import pytest
from fastapi import HTTPException

from app.core.constants import AttemptEvent, AttemptStatusEnum, QuestionTypeEnum
from app.core.exceptions import FinalizationError, TransitionConflictError
from app.crud.answer import answer as crud_answer
from app.crud.attempt import attempt as crud_attempt
from app.models.attempt import Attempt
from app.models.question import Question
from app.models.result import Result
from app.schemas.answer import AnswerSave
from app.schemas.attempt import AttemptStartRequest
from app.services.attempt import attempt_service
from app.services.attempt_admin import attempt_admin_service
from app.services.finalizer import finalizer_service
from app.services.reconciliation import reconciliation_service
from app.utils.events import event_bus
from tests.helpers.factories import T0, at


def start(db, session, context, now=T0):
    return attempt_service.start_attempt(db, AttemptStartRequest(session_id=session.id), context, now=now)

def broken_key_questions():
    return [
        {
            "question_text": "Capital of Nigeria?",
            "question_type": QuestionTypeEnum.MULTIPLE_CHOICE,
            "options": {"A": "Abuja", "B": "Lagos"},
            "correct_answer": None,
            "points": 1,
            "position": 0,
        },
        {
            "question_text": "2 + 2?",
            "question_type": QuestionTypeEnum.SHORT_ANSWER,
            "correct_answer": "4",
            "points": 1,
            "position": 1,
        },
    ]


def test_finalize_twice_yields_the_same_result(db_session, exam, exam_session, student_context):
    finalized = []
    event_bus.subscribe(AttemptEvent.FINALIZED.value, finalized.append)
    started = start(db_session, exam_session, student_context)
    attempt_service.save_answer(
        db_session, started.attempt_id, AnswerSave(question_id=exam.questions[1].id, answer=" 2 "),
        student_context, now=at(30),
    )
    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))
    first = db_session.query(Result).filter(Result.attempt_id == started.attempt_id).one()
    first_values = (first.id, first.points_earned, first.total_points, first.percentage_score)

    again = finalizer_service.finalize(db_session, started.attempt_id, now=at(120))

    assert (again.id, again.points_earned, again.total_points, again.percentage_score) == first_values
    assert db_session.query(Result).filter(Result.attempt_id == started.attempt_id).count() == 1
    assert [event["rescored"] for event in finalized] == [False, True]


def test_finalize_grades_each_saved_answer(db_session, exam, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    right, wrong = exam.questions[1].id, exam.questions[2].id
    for question_id, text in ((right, "2"), (wrong, "5")):
        attempt_service.save_answer(
            db_session, started.attempt_id, AnswerSave(question_id=question_id, answer=text),
            student_context, now=at(30),
        )
    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))

    graded_right = crud_answer.get_by_attempt_and_question(db_session, attempt_id=started.attempt_id, question_id=right)
    graded_wrong = crud_answer.get_by_attempt_and_question(db_session, attempt_id=started.attempt_id, question_id=wrong)
    assert (graded_right.is_correct, graded_right.points_earned) == (True, 1)
    assert (graded_wrong.is_correct, graded_wrong.points_earned) == (False, 0)


def test_open_attempt_cannot_be_finalized(db_session, exam_session, student_context):
    started = start(db_session, exam_session, student_context)
    with pytest.raises(TransitionConflictError):
        finalizer_service.finalize(db_session, started.attempt_id, now=at(10))


def test_malformed_key_leaves_attempt_pending_until_fixed(
    db_session, exam_factory, session_factory, student_context, instructor_context
):
    exam = exam_factory(questions=broken_key_questions())
    session = session_factory(exam)
    started = start(db_session, session, student_context)

    submitted = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))
    attempt = db_session.get(Attempt, started.attempt_id)

    assert submitted.finalized is False
    assert submitted.status == AttemptStatusEnum.SUBMITTED
    assert "malformed" in attempt.finalization_error
    assert attempt.finalization_attempts == 1
    pending = attempt_admin_service.list_pending_finalization(db_session, instructor_context)
    assert [a.id for a in pending] == [started.attempt_id]

    with pytest.raises(HTTPException) as exc_info:
        attempt_admin_service.finalize_attempt(db_session, started.attempt_id, instructor_context, now=at(90))
    assert exc_info.value.status_code == 422

    broken = db_session.query(Question).filter(Question.exam_id == exam.id, Question.position == 0).one()
    broken.correct_answer = "A"
    db_session.commit()

    stats = reconciliation_service.run(db_session, now=at(120))
    attempt = db_session.get(Attempt, started.attempt_id)

    assert stats == {"expired": 0, "finalized": 1, "failed": 0}
    assert attempt.status == AttemptStatusEnum.COMPLETED
    assert attempt.finalization_error is None
    assert attempt.finalization_attempts == 3


def test_finalization_failure_is_raised_to_direct_callers(
    db_session, exam_factory, session_factory, student_context
):
    exam = exam_factory(questions=broken_key_questions())
    session = session_factory(exam)
    started = start(db_session, session, student_context)
    attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(60))

    with pytest.raises(FinalizationError) as exc_info:
        finalizer_service.finalize(db_session, started.attempt_id, now=at(70))
    assert exc_info.value.attempt_id == started.attempt_id


def test_reconciliation_expires_untouched_attempts(
    db_session, exam_session, student_context, other_student_context
):
    first = start(db_session, exam_session, student_context, now=T0)
    second = start(db_session, exam_session, other_student_context, now=at(100))

    stats = reconciliation_service.run(db_session, now=at(1850))
    assert stats == {"expired": 1, "finalized": 0, "failed": 0}
    assert db_session.get(Attempt, first.attempt_id).status == AttemptStatusEnum.COMPLETED
    assert db_session.get(Attempt, second.attempt_id).status == AttemptStatusEnum.IN_PROGRESS

    stats = reconciliation_service.run(db_session, now=at(1950))
    assert stats["expired"] == 1
    assert db_session.get(Attempt, second.attempt_id).status == AttemptStatusEnum.COMPLETED


def test_reconciliation_locks_only_overdue_attempts(
    db_session, exam_session, student_context, other_student_context, monkeypatch
):
    overdue = start(db_session, exam_session, student_context, now=T0)
    running = start(db_session, exam_session, other_student_context, now=at(900))
    locked = []
    real_get_for_update = crud_attempt.get_for_update

    def recording_get_for_update(db, id):
        locked.append(id)
        return real_get_for_update(db, id)

    monkeypatch.setattr(crud_attempt, "get_for_update", recording_get_for_update)

    assert reconciliation_service.expire_overdue(db_session, now=at(1850)) == 1
    assert overdue.attempt_id in locked
    assert running.attempt_id not in locked
    assert db_session.get(Attempt, running.attempt_id).status == AttemptStatusEnum.IN_PROGRESS


def test_late_submit_tries_finalization_once(db_session, exam_factory, session_factory, student_context):
    exam = exam_factory(questions=broken_key_questions())
    session = session_factory(exam)
    started = start(db_session, session, student_context)

    submitted = attempt_service.submit_attempt(db_session, started.attempt_id, student_context, now=at(1900))
    attempt = db_session.get(Attempt, started.attempt_id)

    assert submitted.already_closed is False
    assert submitted.finalized is False
    assert submitted.status == AttemptStatusEnum.EXPIRED
    assert attempt.finalization_attempts == 1
