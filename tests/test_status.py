from datetime import date

import pytest

from studio_task_engine import (
    ApprovalRequiredError,
    ApprovalStage,
    InvalidTransitionError,
    StatusDeriver,
    TaskStatus,
    VoteAction,
    project_progress,
    task_progress,
)
from studio_task_engine.models import FROZEN_STATUSES
from studio_task_engine.status import ADVANCE_TRANSITIONS, MANUAL_TARGETS, is_overdue, moves_forward


@pytest.mark.parametrize(
    ("checklist", "approved", "expected"),
    [
        ((False, False), False, TaskStatus.TODO),
        ((True, False), False, TaskStatus.IN_PROGRESS),
        ((True, True), False, TaskStatus.REVIEW),
        ((True, True), True, TaskStatus.DONE),
        ((False,), True, TaskStatus.TODO),
    ],
)
def test_checklist_drives_status(make_task, checklist, approved, expected) -> None:
    task = make_task(checklist=checklist, completion_approved=approved)
    assert StatusDeriver().derive(task) == expected


def test_full_checklist_without_sign_off_is_review_not_done(make_task) -> None:
    task = make_task("a", status=TaskStatus.DONE, checklist=(True, True))
    assert StatusDeriver().recompute(task).status == TaskStatus.REVIEW


def test_recompute_is_idempotent(make_task) -> None:
    deriver = StatusDeriver()
    for flags in [(), (False,), (True, False), (True, True)]:
        for approved in (False, True):
            once = deriver.recompute(make_task(checklist=flags, completion_approved=approved))
            assert deriver.recompute(once) == once


@pytest.mark.parametrize("status", sorted(FROZEN_STATUSES, key=lambda s: s.value))
def test_frozen_status_is_never_derived(make_task, status) -> None:
    task = make_task(status=status, checklist=(True, True), completion_approved=True)
    deriver = StatusDeriver()
    assert deriver.derive(task) == status
    assert deriver.after_vote(task, ApprovalStage.COMPLETION, VoteAction.APPROVE) == status


def test_checklist_free_done_without_sign_off_drops_to_review(make_task) -> None:
    assert StatusDeriver().derive(make_task(status=TaskStatus.DONE)) == TaskStatus.REVIEW
    assert StatusDeriver().derive(make_task(status=TaskStatus.IN_PROGRESS)) == TaskStatus.IN_PROGRESS


def test_advance_cycle(make_task) -> None:
    deriver = StatusDeriver()
    assert deriver.advance(make_task(status=TaskStatus.TODO)) == TaskStatus.IN_PROGRESS
    assert deriver.advance(make_task(status=TaskStatus.OVERDUE)) == TaskStatus.IN_PROGRESS
    assert deriver.advance(make_task(status=TaskStatus.IN_PROGRESS)) == TaskStatus.REVIEW
    assert deriver.advance(make_task(status=TaskStatus.REVIEW, completion_approved=True)) == TaskStatus.DONE
    assert deriver.advance(make_task(status=TaskStatus.DONE, completion_approved=True)) == TaskStatus.IN_PROGRESS


def test_advance_table_covers_every_unfrozen_status() -> None:
    unfrozen = {status for status in TaskStatus if status not in FROZEN_STATUSES}
    assert set(ADVANCE_TRANSITIONS) == unfrozen
    assert set(ADVANCE_TRANSITIONS.values()) <= MANUAL_TARGETS


def test_advance_into_done_needs_sign_off(make_task) -> None:
    with pytest.raises(ApprovalRequiredError):
        StatusDeriver().advance(make_task(status=TaskStatus.REVIEW))


def test_advance_refuses_checklist_and_frozen_tasks(make_task) -> None:
    with pytest.raises(InvalidTransitionError):
        StatusDeriver().advance(make_task(checklist=(False,)))
    with pytest.raises(InvalidTransitionError):
        StatusDeriver().advance(make_task(status=TaskStatus.ON_HOLD))


def test_manual_targets(make_task) -> None:
    deriver = StatusDeriver()
    deriver.check_manual_target(make_task(), TaskStatus.REVIEW)
    with pytest.raises(InvalidTransitionError):
        deriver.check_manual_target(make_task(), TaskStatus.OVERDUE)
    with pytest.raises(InvalidTransitionError):
        deriver.check_manual_target(make_task(checklist=(False,)), TaskStatus.IN_PROGRESS)
    with pytest.raises(ApprovalRequiredError):
        deriver.check_manual_target(make_task(status=TaskStatus.REVIEW), TaskStatus.DONE)


@pytest.mark.parametrize(
    ("status", "stage", "expected"),
    [
        (TaskStatus.IN_PROGRESS, ApprovalStage.START, TaskStatus.TODO),
        (TaskStatus.DONE, ApprovalStage.COMPLETION, TaskStatus.REVIEW),
        (TaskStatus.REVIEW, ApprovalStage.COMPLETION, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, ApprovalStage.COMPLETION, TaskStatus.IN_PROGRESS),
    ],
)
def test_rejection_steps_back(make_task, status, stage, expected) -> None:
    assert StatusDeriver().after_vote(make_task(status=status), stage, VoteAction.REJECT) == expected


def test_satisfied_completion_promotes_review(make_task) -> None:
    task = make_task(status=TaskStatus.REVIEW, completion_approved=True)
    assert StatusDeriver().after_vote(task, ApprovalStage.COMPLETION, VoteAction.APPROVE) == TaskStatus.DONE


def test_moves_forward() -> None:
    assert moves_forward(TaskStatus.TODO, TaskStatus.IN_PROGRESS) is True
    assert moves_forward(TaskStatus.OVERDUE, TaskStatus.IN_PROGRESS) is True
    assert moves_forward(TaskStatus.DONE, TaskStatus.IN_PROGRESS) is False
    assert moves_forward(TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD) is False
    assert moves_forward(TaskStatus.TODO, TaskStatus.OVERDUE) is False


def test_is_overdue(make_task) -> None:
    today = date(2025, 3, 11)
    assert is_overdue(make_task(status=TaskStatus.IN_PROGRESS), today) is True
    assert is_overdue(make_task(status=TaskStatus.IN_PROGRESS), date(2025, 3, 10)) is False
    for exempt in (TaskStatus.DONE, TaskStatus.REVIEW, TaskStatus.OVERDUE, TaskStatus.ON_HOLD, TaskStatus.ABORTED):
        assert is_overdue(make_task(status=exempt), today) is False


def test_progress(make_task) -> None:
    assert task_progress(make_task(checklist=(True, False, False))) == 33
    assert task_progress(make_task(checklist=(True, True, False))) == 67
    assert task_progress(make_task(status=TaskStatus.DONE)) == 100
    assert task_progress(make_task()) == 0
    assert project_progress([make_task(checklist=(True, False)), make_task(status=TaskStatus.DONE)]) == 75
    assert project_progress([]) == 0
