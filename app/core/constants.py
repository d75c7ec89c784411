from enum import Enum


class RoleEnum(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"

class AttemptStatusEnum(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    COMPLETED = "completed"

TERMINAL_ATTEMPT_STATUSES = frozenset({
    AttemptStatusEnum.SUBMITTED,
    AttemptStatusEnum.EXPIRED,
    AttemptStatusEnum.COMPLETED,
})

# answers frozen, result not yet written
AWAITING_FINALIZATION_STATUSES = frozenset({
    AttemptStatusEnum.SUBMITTED,
    AttemptStatusEnum.EXPIRED,
})

class TimerStatusEnum(str, Enum):
    NORMAL = "normal"
    CAUTION = "caution"
    WARNING = "warning"
    EXPIRED = "expired"

class SessionStatusEnum(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"

class QuestionTypeEnum(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    FILL_IN_GAP = "fill_in_gap"
    SUBJECTIVE = "subjective"

class NotificationStatusEnum(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

class AttemptEvent(str, Enum):
    CLOSED = "attempt_closed"
    FINALIZED = "attempt_finalized"
    MONITORING_REVOKED = "monitoring_revoked"
    NOTIFICATION_SCHEDULED = "result_notification_scheduled"
    NOTIFICATION_DUE = "result_notification_due"
    INCIDENT_LOGGED = "proctoring_incident"
    WARNING_SENT = "student_warning"

class IncidentTypeEnum(str, Enum):
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    COPY_PASTE_ATTEMPT = "copy_paste_attempt"
    DEVELOPER_TOOLS_ATTEMPT = "developer_tools_attempt"
    SCREENSHOT_ATTEMPT = "screenshot_attempt"
    RIGHT_CLICK_ATTEMPT = "right_click_attempt"
    TEXT_SELECTION = "text_selection"
    WINDOW_RESIZE = "window_resize"

class SeverityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
