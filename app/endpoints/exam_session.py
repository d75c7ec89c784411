from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.schemas.attempt import Attempt
from app.schemas.exam_session import (
    ExamSession,
    ExamSessionCreate,
    ExamSessionStatusUpdate,
    SessionJoinRequest,
    SessionJoinResponse,
)
from app.schemas.proctoring import Incident
from app.schemas.response import APIResponse
from app.schemas.user import UserContext
from app.services.exam_session import exam_session_service
from app.services.proctoring import proctoring_service
from app.utils import deps

router = APIRouter()

@router.post("/join", response_model=APIResponse[SessionJoinResponse])
async def join_session(
    *,
    db: Session = Depends(deps.get_transactional_db),
    join_in: SessionJoinRequest,
    context: UserContext = Depends(deps.require_student)
):
    joined = exam_session_service.join_session(db, join_in=join_in, context=context)
    return APIResponse(message="Joined exam session", data=joined)


@router.post("/", response_model=APIResponse[ExamSession], status_code=status.HTTP_201_CREATED)
async def create_session(
    *,
    db: Session = Depends(deps.get_transactional_db),
    session_in: ExamSessionCreate,
    context: UserContext = Depends(deps.require_instructor)
):
    session = exam_session_service.create_session(db, session_in=session_in, context=context)
    return APIResponse(message="Exam session created successfully", data=ExamSession.model_validate(session))


@router.get("/{session_id}", response_model=APIResponse[ExamSession])
async def get_session(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    session = exam_session_service.get_session(db, session_id=session_id, context=context)
    return APIResponse(message="Exam session retrieved successfully", data=ExamSession.model_validate(session))


@router.patch("/{session_id}/status", response_model=APIResponse[ExamSession])
async def update_session_status(
    *,
    db: Session = Depends(deps.get_transactional_db),
    session_id: int,
    status_in: ExamSessionStatusUpdate,
    context: UserContext = Depends(deps.require_instructor)
):
    session = exam_session_service.update_status(db, session_id=session_id, new_status=status_in.status, context=context)
    return APIResponse(message="Exam session status updated", data=ExamSession.model_validate(session))


@router.post("/{session_id}/release-results", response_model=APIResponse[ExamSession])
async def release_results(
    *,
    db: Session = Depends(deps.get_transactional_db),
    session_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    session = exam_session_service.release_results(db, session_id=session_id, context=context)
    return APIResponse(message="Results released", data=ExamSession.model_validate(session))


@router.post("/{session_id}/cameras/disable", response_model=APIResponse[List[int]])
async def disable_cameras(
    *,
    db: Session = Depends(deps.get_transactional_db),
    session_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    attempt_ids = exam_session_service.disable_cameras(db, session_id=session_id, context=context)
    return APIResponse(message=f"Disabled {len(attempt_ids)} camera(s)", data=attempt_ids)


@router.get("/{session_id}/attempts", response_model=APIResponse[List[Attempt]])
async def list_session_attempts(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    attempts = exam_session_service.list_attempts(db, session_id=session_id, context=context)
    return APIResponse(message="Attempts retrieved successfully", data=[Attempt.model_validate(a) for a in attempts])


@router.get("/{session_id}/incidents", response_model=APIResponse[List[Incident]])
async def list_session_incidents(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    incidents = proctoring_service.list_session_incidents(db, session_id=session_id, context=context)
    return APIResponse(message="Incidents retrieved successfully", data=[Incident.model_validate(i) for i in incidents])
