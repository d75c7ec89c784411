from typing import Any, Dict, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.result import Result
from app.schemas.result import ResultBase


class CRUDResult(CRUDBase[Result, ResultBase, BaseModel]):

    def get_by_attempt(self, db: Session, *, attempt_id: int) -> Optional[Result]:
        return db.query(Result).filter(Result.attempt_id == attempt_id).first()

    def upsert(self, db: Session, *, attempt_id: int, values: Dict[str, Any], commit: bool = False) -> Result:
        existing = self.get_by_attempt(db, attempt_id=attempt_id)
        if existing:
            return self.update(db, db_obj=existing, obj_in=values, commit=commit)
        return self.create(db, obj_in={**values, "attempt_id": attempt_id}, commit=commit)


result = CRUDResult(Result)
