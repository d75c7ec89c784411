from typing import Dict, FrozenSet, Optional

from app.core.constants import AttemptStatusEnum


class InvalidTransitionError(ValueError):
    def __init__(self, current: Optional[AttemptStatusEnum], target: AttemptStatusEnum):
        self.current = current
        self.target = target
        current_label = current.value if current is not None else "none"
        super().__init__(f"Attempt cannot move from '{current_label}' to '{target.value}'.")


ATTEMPT_TRANSITIONS: Dict[AttemptStatusEnum, FrozenSet[AttemptStatusEnum]] = {
    AttemptStatusEnum.NOT_STARTED: frozenset({AttemptStatusEnum.IN_PROGRESS}),
    AttemptStatusEnum.IN_PROGRESS: frozenset({AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED}),
    AttemptStatusEnum.SUBMITTED: frozenset({AttemptStatusEnum.COMPLETED}),
    AttemptStatusEnum.EXPIRED: frozenset({AttemptStatusEnum.COMPLETED}),
    AttemptStatusEnum.COMPLETED: frozenset(),
}


def can_transition(current: Optional[AttemptStatusEnum], target: AttemptStatusEnum) -> bool:
    if current is None:
        return target == AttemptStatusEnum.NOT_STARTED
    return target in ATTEMPT_TRANSITIONS.get(AttemptStatusEnum(current), frozenset())


def ensure_transition(current: Optional[AttemptStatusEnum], target: AttemptStatusEnum) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(AttemptStatusEnum(current) if current is not None else None, target)
