from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError

from app.core.constants import RoleEnum
from app.core.database import SessionLocal
from app.core.security import decode_access_token
from app.schemas.token import TokenPayload
from app.schemas.user import UserContext

http_bearer = HTTPBearer()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_transactional_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def context_from_token(token: str) -> UserContext:
    try:
        payload = decode_access_token(token)
        token_data = TokenPayload(**payload)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return UserContext(user_id=token_data.user_id, role=token_data.role)

def get_current_user_with_context(
    credentials: HTTPAuthorizationCredentials = Depends(http_bearer)
) -> UserContext:
    return context_from_token(credentials.credentials)

def require_role(*roles: RoleEnum):
    """Dependency that checks the caller holds one of the given roles."""
    def _verify_role(context: UserContext = Depends(get_current_user_with_context)) -> UserContext:
        if context.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action."
            )
        return context
    return _verify_role

require_student = require_role(RoleEnum.STUDENT)
require_instructor = require_role(RoleEnum.INSTRUCTOR)
