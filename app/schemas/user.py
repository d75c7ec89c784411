from pydantic import BaseModel

from app.core.constants import RoleEnum

class UserContext(BaseModel):
    """The caller of a request: identity plus the role the token grants."""
    user_id: int
    role: RoleEnum

    @property
    def is_student(self) -> bool:
        return self.role == RoleEnum.STUDENT

    @property
    def is_instructor(self) -> bool:
        return self.role == RoleEnum.INSTRUCTOR
