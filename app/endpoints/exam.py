from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.exam import Exam, ExamCreate
from app.schemas.user import UserContext
from app.services.exam import exam_service

router = APIRouter()

@router.post("/", response_model=APIResponse[Exam], status_code=status.HTTP_201_CREATED)
async def create_exam(
    *,
    db: Session = Depends(deps.get_transactional_db),
    exam_in: ExamCreate,
    context: UserContext = Depends(deps.require_instructor)
):
    new_exam = exam_service.create_exam(db, exam_in=exam_in, context=context)
    return APIResponse(message="Exam created successfully", data=Exam.model_validate(new_exam))


@router.get("/{exam_id}", response_model=APIResponse[Exam])
async def get_exam(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    context: UserContext = Depends(deps.require_instructor)
):
    exam = exam_service.get_exam(db, exam_id=exam_id, context=context)
    return APIResponse(message="Exam retrieved successfully", data=Exam.model_validate(exam))
