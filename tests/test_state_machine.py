import pytest

from app.core.constants import AttemptStatusEnum as S
from app.core.state_machine import InvalidTransitionError, can_transition, ensure_transition


@pytest.mark.parametrize("current,target", [
    (S.NOT_STARTED, S.IN_PROGRESS),
    (S.IN_PROGRESS, S.SUBMITTED),
    (S.IN_PROGRESS, S.EXPIRED),
    (S.SUBMITTED, S.COMPLETED),
    (S.EXPIRED, S.COMPLETED),
])
def test_forward_transitions_are_allowed(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (S.COMPLETED, S.IN_PROGRESS),
    (S.SUBMITTED, S.IN_PROGRESS),
    (S.EXPIRED, S.IN_PROGRESS),
    (S.SUBMITTED, S.EXPIRED),
    (S.EXPIRED, S.SUBMITTED),
    (S.IN_PROGRESS, S.COMPLETED),
    (S.NOT_STARTED, S.SUBMITTED),
    (S.IN_PROGRESS, S.NOT_STARTED),
])
def test_other_transitions_are_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_transition(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.target == target


def test_new_attempt_can_only_begin_not_started():
    assert can_transition(None, S.NOT_STARTED)
    assert not can_transition(None, S.IN_PROGRESS)
