from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.schemas.answer import Answer, AnswerSave
from app.schemas.attempt import (
    Attempt,
    AttemptStartRequest,
    AttemptStartResponse,
    CameraUpdate,
    PositionUpdate,
    SubmitResponse,
    TimerState,
)
from app.schemas.proctoring import IncidentCreate, IncidentLogged, StudentWarning, WarningCreate
from app.schemas.question import Question
from app.schemas.response import APIResponse
from app.schemas.result import ResultDetails
from app.schemas.user import UserContext
from app.services.attempt import attempt_service
from app.services.proctoring import proctoring_service
from app.utils import deps

router = APIRouter()

@router.post("/start", response_model=APIResponse[AttemptStartResponse])
async def start_attempt(
    *,
    db: Session = Depends(deps.get_transactional_db),
    start_in: AttemptStartRequest,
    context: UserContext = Depends(deps.require_student)
):
    started = attempt_service.start_attempt(db, start_in=start_in, context=context)
    message = "Exam attempt resumed" if started.resumed else "Exam attempt started"
    return APIResponse(message=message, data=started)


@router.get("/{attempt_id}/timer", response_model=APIResponse[TimerState])
async def get_timer(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    timer_state = attempt_service.get_timer(db, attempt_id=attempt_id, context=context)
    return APIResponse(message="Timer retrieved", data=timer_state)


@router.put("/{attempt_id}/answers", response_model=APIResponse[Answer])
async def save_answer(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    answer_in: AnswerSave,
    context: UserContext = Depends(deps.require_student)
):
    answer = attempt_service.save_answer(db, attempt_id=attempt_id, answer_in=answer_in, context=context)
    return APIResponse(message="Answer saved", data=Answer.model_validate(answer))


@router.patch("/{attempt_id}/position", response_model=APIResponse[Attempt])
async def update_position(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    position_in: PositionUpdate,
    context: UserContext = Depends(deps.require_student)
):
    attempt = attempt_service.update_position(db, attempt_id=attempt_id, position_in=position_in, context=context)
    return APIResponse(message="Position saved", data=Attempt.model_validate(attempt))


@router.patch("/{attempt_id}/camera", response_model=APIResponse[Attempt])
async def set_camera(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    camera_in: CameraUpdate,
    context: UserContext = Depends(deps.require_student)
):
    attempt = attempt_service.set_camera(db, attempt_id=attempt_id, camera_in=camera_in, context=context)
    return APIResponse(message="Camera state updated", data=Attempt.model_validate(attempt))


@router.post("/{attempt_id}/submit", response_model=APIResponse[SubmitResponse])
async def submit_attempt(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    context: UserContext = Depends(deps.require_student)
):
    submitted = attempt_service.submit_attempt(db, attempt_id=attempt_id, context=context)
    message = "Exam attempt already closed" if submitted.already_closed else "Exam attempt submitted"
    return APIResponse(message=message, data=submitted)


@router.get("/{attempt_id}/questions", response_model=APIResponse[List[Question]])
async def get_attempt_questions(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.require_student)
):
    questions = attempt_service.get_questions(db, attempt_id=attempt_id, context=context)
    return APIResponse(message="Questions retrieved successfully", data=[Question.model_validate(q) for q in questions])


@router.get("/{attempt_id}/result", response_model=APIResponse[ResultDetails])
async def get_attempt_result(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    result = attempt_service.get_result(db, attempt_id=attempt_id, context=context)
    return APIResponse(message="Result retrieved successfully", data=result)


@router.post("/{attempt_id}/incidents", response_model=APIResponse[IncidentLogged], status_code=status.HTTP_201_CREATED)
async def log_incident(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    incident_in: IncidentCreate,
    context: UserContext = Depends(deps.require_student)
):
    logged = proctoring_service.log_incident(db, attempt_id=attempt_id, incident_in=incident_in, context=context)
    return APIResponse(message="Incident recorded", data=logged)


@router.post("/{attempt_id}/warnings", response_model=APIResponse[StudentWarning], status_code=status.HTTP_201_CREATED)
async def send_warning(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    warning_in: WarningCreate,
    context: UserContext = Depends(deps.require_instructor)
):
    warning = proctoring_service.send_warning(db, attempt_id=attempt_id, warning_in=warning_in, context=context)
    return APIResponse(message="Warning sent", data=StudentWarning.model_validate(warning))


@router.get("/{attempt_id}/warnings", response_model=APIResponse[List[StudentWarning]])
async def list_warnings(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    pending: bool = False,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    warnings = proctoring_service.list_warnings(db, attempt_id=attempt_id, context=context, pending_only=pending)
    return APIResponse(message="Warnings retrieved successfully", data=[StudentWarning.model_validate(w) for w in warnings])


@router.post("/{attempt_id}/warnings/{warning_id}/acknowledge", response_model=APIResponse[StudentWarning])
async def acknowledge_warning(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    warning_id: int,
    context: UserContext = Depends(deps.require_student)
):
    warning = proctoring_service.acknowledge_warning(db, attempt_id=attempt_id, warning_id=warning_id, context=context)
    return APIResponse(message="Warning acknowledged", data=StudentWarning.model_validate(warning))
