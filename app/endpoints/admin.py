from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.schemas.attempt import Attempt
from app.schemas.response import APIResponse
from app.schemas.result import Result
from app.schemas.user import UserContext
from app.services.attempt_admin import attempt_admin_service
from app.utils import deps

router = APIRouter()

@router.post("/attempts/{attempt_id}/finalize", response_model=APIResponse[Result])
async def finalize_attempt(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    result = attempt_admin_service.finalize_attempt(db, attempt_id=attempt_id, context=context)
    return APIResponse(message="Attempt finalized", data=Result.model_validate(result))


@router.get("/attempts/pending-finalization", response_model=APIResponse[List[Attempt]])
async def list_pending_finalization(
    *,
    db: Session = Depends(deps.get_db),
    skip: int = 0,
    limit: int = 100,
    context: UserContext = Depends(deps.require_instructor)
):
    attempts = attempt_admin_service.list_pending_finalization(db, context=context, skip=skip, limit=limit)
    return APIResponse(message="Attempts awaiting finalization", data=[Attempt.model_validate(a) for a in attempts])


@router.post("/attempts/{attempt_id}/reopen", response_model=APIResponse[Attempt])
async def reopen_attempt(
    *,
    db: Session = Depends(deps.get_transactional_db),
    attempt_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    attempt = attempt_admin_service.reopen_attempt(db, attempt_id=attempt_id, context=context)
    return APIResponse(message="Attempt reopened", data=Attempt.model_validate(attempt))
