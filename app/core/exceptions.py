from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class PortalHTTPException(HTTPException):
    """HTTPException that carries a stable error code and a hint for the client."""
    error_code = "BAD_REQUEST"
    client_action = "fix_request"
    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, *, status_code: Optional[int] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=status_code or self.default_status, detail=detail)
        self.context = context or {}


class SessionUnavailableError(PortalHTTPException):
    error_code = "SESSION_UNAVAILABLE"


class InvalidQuestionError(PortalHTTPException):
    error_code = "INVALID_QUESTION"


class AttemptClosedError(PortalHTTPException):
    """Start requested for an attempt that already reached a terminal status."""
    error_code = "ATTEMPT_CLOSED"
    client_action = "redirect_to_result"
    default_status = status.HTTP_409_CONFLICT


class AttemptNotActiveError(PortalHTTPException):
    """A write arrived for an attempt that is no longer in progress."""
    error_code = "ATTEMPT_NOT_ACTIVE"
    client_action = "redirect_to_result"
    default_status = status.HTTP_409_CONFLICT


class TransitionConflictError(PortalHTTPException):
    error_code = "INVALID_TRANSITION"
    client_action = "redirect_to_result"
    default_status = status.HTTP_409_CONFLICT


class ResultNotAvailableError(PortalHTTPException):
    error_code = "RESULT_NOT_AVAILABLE"
    client_action = "retry"
    default_status = status.HTTP_409_CONFLICT


class ScoringError(Exception):
    pass


class FinalizationError(Exception):
    def __init__(self, attempt_id: int, reason: str):
        self.attempt_id = attempt_id
        self.reason = reason
        super().__init__(f"Finalization failed for attempt {attempt_id}: {reason}")
