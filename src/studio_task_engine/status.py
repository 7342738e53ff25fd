from __future__ import annotations

import logging
import math
from datetime import date
from fractions import Fraction
from typing import Iterable

from .errors import ApprovalRequiredError, InvalidTransitionError
from .models import (
    FROZEN_STATUSES,
    OVERDUE_EXEMPT_STATUSES,
    PROGRESS_RANK,
    ApprovalStage,
    Task,
    TaskStatus,
    VoteAction,
)

logger = logging.getLogger(__name__)

# Manual "advance" on a checklist-free task. A finished task re-opens.
ADVANCE_TRANSITIONS: dict[TaskStatus, TaskStatus] = {
    TaskStatus.TODO: TaskStatus.IN_PROGRESS,
    TaskStatus.OVERDUE: TaskStatus.IN_PROGRESS,
    TaskStatus.IN_PROGRESS: TaskStatus.REVIEW,
    TaskStatus.REVIEW: TaskStatus.DONE,
    TaskStatus.DONE: TaskStatus.IN_PROGRESS,
}

# Statuses a user may pick directly on the board.
MANUAL_TARGETS = frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.DONE})

# Where a rejected completion vote sends a checklist-free task.
_COMPLETION_REJECT_TRANSITIONS: dict[TaskStatus, TaskStatus] = {
    TaskStatus.DONE: TaskStatus.REVIEW,
    TaskStatus.REVIEW: TaskStatus.IN_PROGRESS,
}


def moves_forward(current: TaskStatus, target: TaskStatus) -> bool:
    """True when ``target`` is further along TODO -> DONE than ``current``."""
    if target in FROZEN_STATUSES or target == TaskStatus.OVERDUE:
        return False
    return PROGRESS_RANK[target] > PROGRESS_RANK.get(current, 0)


def is_overdue(task: Task, today: date) -> bool:
    return task.due_date < today and task.status not in OVERDUE_EXEMPT_STATUSES


def task_progress(task: Task) -> int:
    """Percent complete: checklist based, or 0/100 by status when there is no checklist."""
    if task.has_checklist:
        return _round_half_up(Fraction(task.completed_items * 100, len(task.checklist)))
    return 100 if task.status == TaskStatus.DONE else 0


def project_progress(tasks: Iterable[Task]) -> int:
    values = [task_progress(task) for task in tasks]
    if not values:
        return 0
    return _round_half_up(Fraction(sum(values), len(values)))


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


class StatusDeriver:
    """Lifecycle state machine.

    Checklist-bearing tasks are status-automated: their status is a function of
    the completion ratio and the completion flow. Checklist-free tasks move only
    through explicit actions (advance, set status, votes). Frozen tasks
    (ON_HOLD, ABORTED) are never touched by derivation.
    """

    def from_checklist(self, task: Task) -> TaskStatus:
        total = len(task.checklist)
        completed = task.completed_items
        if completed == 0:
            return TaskStatus.TODO
        if completed < total:
            return TaskStatus.IN_PROGRESS
        if task.approvals.completion.is_satisfied:
            return TaskStatus.DONE
        return TaskStatus.REVIEW

    def derive(self, task: Task) -> TaskStatus:
        if task.status in FROZEN_STATUSES:
            return task.status
        if task.has_checklist:
            return self.from_checklist(task)
        if task.status == TaskStatus.DONE and not task.approvals.completion.is_satisfied:
            return TaskStatus.REVIEW
        return task.status

    def recompute(self, task: Task) -> Task:
        status = self.derive(task)
        if status == task.status:
            return task
        logger.debug("recompute task=%s %s -> %s", task.id, task.status.value, status.value)
        return task.model_copy(update={"status": status})

    def resumed_status(self, task: Task) -> TaskStatus:
        """Status a frozen task lands on when oversight lifts the freeze."""
        if task.has_checklist:
            return self.from_checklist(task)
        return TaskStatus.IN_PROGRESS

    def after_vote(self, task: Task, stage: ApprovalStage, action: VoteAction) -> TaskStatus:
        """Status once a vote has been applied to ``task.approvals``.

        A rejection undoes the stage it rejects: a rejected start sends the task
        back to TODO, a rejected completion steps it back one stage. Checklist
        tasks are simply re-derived, so their status keeps following the
        checklist.
        """
        status = task.status
        if status in FROZEN_STATUSES:
            return status
        if task.has_checklist:
            return self.from_checklist(task)

        if action == VoteAction.REJECT:
            if stage == ApprovalStage.START:
                return TaskStatus.TODO
            return _COMPLETION_REJECT_TRANSITIONS.get(status, status)

        completion = task.approvals.completion
        if status == TaskStatus.REVIEW and completion.is_satisfied:
            return TaskStatus.DONE
        if status == TaskStatus.DONE and not completion.is_satisfied:
            return TaskStatus.REVIEW
        return status

    def advance(self, task: Task) -> TaskStatus:
        """Next status of the manual advance cycle.

        Raises:
            InvalidTransitionError: The task has a checklist, or its status has
                no place in the cycle.
            ApprovalRequiredError: Moving into DONE without completion sign-off.
        """
        if task.has_checklist:
            raise InvalidTransitionError(task.id, f"Task {task.id} status follows its checklist")
        target = ADVANCE_TRANSITIONS.get(task.status)
        if target is None:
            raise InvalidTransitionError(task.id, f"Task {task.id} cannot advance from {task.status.value}")
        if target == TaskStatus.DONE and not task.approvals.completion.is_satisfied:
            raise ApprovalRequiredError(task.id)
        return target

    def check_manual_target(self, task: Task, target: TaskStatus) -> None:
        """Validate a status picked directly by a user.

        Raises:
            InvalidTransitionError: The target is not user-settable, or the task
                has a checklist.
            ApprovalRequiredError: DONE without completion sign-off.
        """
        if target not in MANUAL_TARGETS:
            raise InvalidTransitionError(task.id, f"Status {target.value} cannot be set directly")
        if task.has_checklist and target != task.status:
            raise InvalidTransitionError(task.id, f"Task {task.id} status follows its checklist")
        if target == TaskStatus.DONE and not task.approvals.completion.is_satisfied:
            raise ApprovalRequiredError(task.id)
