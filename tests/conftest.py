from __future__ import annotations

import itertools
from datetime import UTC, date, datetime
from typing import Callable

import pytest

from studio_task_engine import (
    Actor,
    ApprovalFlow,
    ApprovalVote,
    Capability,
    ChecklistItem,
    EngineSettings,
    Task,
    TaskApprovals,
    TaskEngine,
    TaskStatus,
    VoteStatus,
)


FIXED_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)


def approved_flow() -> ApprovalFlow:
    return ApprovalFlow(
        client=ApprovalVote(status=VoteStatus.APPROVED, voted_by="client-1", timestamp=FIXED_NOW),
        oversight=ApprovalVote(status=VoteStatus.APPROVED, voted_by="admin-1", timestamp=FIXED_NOW),
    )


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Build a task with sane defaults; ``checklist`` takes completion flags."""

    def _make(
        task_id: str = "t1",
        *,
        title: str | None = None,
        status: TaskStatus = TaskStatus.TODO,
        start: date = date(2025, 3, 1),
        due: date = date(2025, 3, 10),
        category: str = "General",
        dependencies: tuple[str, ...] = (),
        checklist: tuple[bool, ...] = (),
        completion_approved: bool = False,
        assignee_id: str | None = "vendor-1",
    ) -> Task:
        approvals = TaskApprovals(completion=approved_flow()) if completion_approved else TaskApprovals()
        return Task(
            id=task_id,
            title=title or f"Task {task_id}",
            category=category,
            status=status,
            start_date=start,
            due_date=due,
            dependencies=dependencies,
            checklist=tuple(
                ChecklistItem(id=f"{task_id}-item-{idx}", title=f"Item {idx}", is_completed=done)
                for idx, done in enumerate(checklist)
            ),
            approvals=approvals,
            assignee_id=assignee_id,
        )

    return _make


@pytest.fixture
def engine() -> TaskEngine:
    counter = itertools.count(1)
    return TaskEngine(EngineSettings(), clock=lambda: FIXED_NOW, id_factory=lambda: f"id-{next(counter)}")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", capability=Capability.OVERSIGHT)


@pytest.fixture
def client() -> Actor:
    return Actor(user_id="client-1", capability=Capability.CLIENT)


@pytest.fixture
def vendor() -> Actor:
    return Actor(user_id="vendor-1", capability=Capability.NONE)
