from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime
from typing import Callable, Iterable

from .approvals import ApprovalGate
from .dependencies import DependencyGraph, validate_dependencies
from .errors import (
    DependencyBlockedError,
    DependencyCycleError,
    InvalidTaskEditError,
    UnauthorizedActionError,
)
from .freeze import FreezeController
from .models import (
    DEFAULT_CATEGORY,
    FROZEN_STATUSES,
    PROGRESS_RANK,
    Actor,
    ApprovalSlot,
    ApprovalStage,
    ChecklistItem,
    Comment,
    Priority,
    Task,
    TaskStatus,
    VoteAction,
)
from .settings import EngineSettings
from .status import StatusDeriver, is_overdue, moves_forward

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _falls_behind_review(current: TaskStatus, target: TaskStatus) -> bool:
    if current not in (TaskStatus.REVIEW, TaskStatus.DONE) or target in FROZEN_STATUSES:
        return False
    return PROGRESS_RANK[target] < PROGRESS_RANK[TaskStatus.REVIEW]


class TaskEngine:
    """Runs one mutation against a task and a snapshot of its project.

    Every operation returns a new ``Task`` or raises a ``TaskRejection``; the
    input task is never modified. The order of checks is fixed: a frozen task
    is refused first, then the operation is applied to a candidate, its status
    is derived, and a forward move past TODO is refused while any prerequisite
    in ``project_tasks`` is not DONE.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings if settings is not None else EngineSettings()
        self.deriver = StatusDeriver()
        self.gate = ApprovalGate()
        self.freezer = FreezeController(self.deriver)
        self.clock = clock if clock is not None else _utc_now
        self.new_id = id_factory if id_factory is not None else _new_id

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_task(
        self,
        *,
        title: str,
        start_date: date,
        due_date: date,
        category: str = DEFAULT_CATEGORY,
        priority: Priority = Priority.MEDIUM,
        assignee_id: str | None = None,
        description: str = "",
        dependencies: Iterable[str] = (),
        checklist: Iterable[str] = (),
        task_id: str | None = None,
    ) -> Task:
        """Build a new task in TODO with both approval flows pending."""
        task_id = task_id or self.new_id()
        if not title.strip():
            raise InvalidTaskEditError(task_id, "Task title must be non-empty")
        if due_date < start_date:
            raise InvalidTaskEditError(
                task_id, f"Due date {due_date.isoformat()} is before start date {start_date.isoformat()}"
            )
        return Task(
            id=task_id,
            title=title.strip(),
            description=description,
            category=category.strip() or DEFAULT_CATEGORY,
            priority=priority,
            assignee_id=assignee_id,
            start_date=start_date,
            due_date=due_date,
            dependencies=validate_dependencies(task_id, dependencies),
            checklist=tuple(ChecklistItem(id=self.new_id(), title=item) for item in checklist),
        )

    # ------------------------------------------------------------------
    # Checklist
    # ------------------------------------------------------------------

    def toggle_checklist_item(self, task: Task, item_id: str, actor: Actor, project_tasks: Iterable[Task]) -> Task:
        self.freezer.ensure_not_frozen(task)
        if not actor.is_oversight and actor.user_id != task.assignee_id:
            raise UnauthorizedActionError(task.id, actor.user_id, "tick the checklist of")
        checklist = tuple(
            item.model_copy(update={"is_completed": not item.is_completed}) if item.id == item_id else item
            for item in self._require_item(task, item_id)
        )
        return self._derive_and_commit(task, task.model_copy(update={"checklist": checklist}), project_tasks)

    def add_checklist_item(self, task: Task, title: str, project_tasks: Iterable[Task]) -> Task:
        self.freezer.ensure_not_frozen(task)
        if not title.strip():
            raise InvalidTaskEditError(task.id, "Checklist item title must be non-empty")
        item = ChecklistItem(id=self.new_id(), title=title.strip())
        candidate = task.model_copy(update={"checklist": task.checklist + (item,)})
        return self._derive_and_commit(task, candidate, project_tasks)

    def remove_checklist_item(self, task: Task, item_id: str, project_tasks: Iterable[Task]) -> Task:
        self.freezer.ensure_not_frozen(task)
        checklist = tuple(item for item in self._require_item(task, item_id) if item.id != item_id)
        return self._derive_and_commit(task, task.model_copy(update={"checklist": checklist}), project_tasks)

    def rename_checklist_item(self, task: Task, item_id: str, title: str) -> Task:
        self.freezer.ensure_not_frozen(task)
        if not title.strip():
            raise InvalidTaskEditError(task.id, "Checklist item title must be non-empty")
        checklist = tuple(
            item.model_copy(update={"title": title.strip()}) if item.id == item_id else item
            for item in self._require_item(task, item_id)
        )
        return task.model_copy(update={"checklist": checklist})

    # ------------------------------------------------------------------
    # Approvals and status
    # ------------------------------------------------------------------

    def vote(
        self,
        task: Task,
        *,
        stage: ApprovalStage,
        slot: ApprovalSlot,
        action: VoteAction,
        actor: Actor,
        project_tasks: Iterable[Task],
    ) -> Task:
        self.freezer.ensure_not_frozen(task)
        approvals = self.gate.vote(
            task.approvals,
            task_id=task.id,
            stage=stage,
            slot=slot,
            action=action,
            actor=actor,
            at=self.clock(),
        )
        candidate = task.model_copy(update={"approvals": approvals})
        status = self.deriver.after_vote(candidate, stage, action)
        if _falls_behind_review(task.status, status):
            # Back before review: any completion sign-off is stale.
            candidate = candidate.model_copy(
                update={"approvals": self.gate.reset(candidate.approvals, ApprovalStage.COMPLETION)}
            )
        return self._commit(task, candidate, DependencyGraph(project_tasks), status)

    def advance(self, task: Task, project_tasks: Iterable[Task]) -> Task:
        """Step a checklist-free task along TODO -> IN_PROGRESS -> REVIEW -> DONE -> IN_PROGRESS."""
        self.freezer.ensure_not_frozen(task)
        status = self.deriver.advance(task)
        return self._commit(task, self._reopened(task, status), DependencyGraph(project_tasks), status)

    def set_status(self, task: Task, status: TaskStatus, project_tasks: Iterable[Task]) -> Task:
        """Move a checklist-free task straight to ``status`` (board drag or menu)."""
        self.freezer.ensure_not_frozen(task)
        graph = DependencyGraph(project_tasks)
        if moves_forward(task.status, status):
            self._ensure_unblocked(task, graph)
        self.deriver.check_manual_target(task, status)
        if status == task.status:
            return task
        return self._commit(task, self._reopened(task, status), graph, status)

    def recompute(self, task: Task) -> Task:
        return self.deriver.recompute(task)

    # ------------------------------------------------------------------
    # Freeze override
    # ------------------------------------------------------------------

    def freeze(self, task: Task, kind: TaskStatus, actor: Actor) -> Task:
        return self.freezer.freeze(task, kind, actor)

    def hold(self, task: Task, actor: Actor) -> Task:
        return self.freezer.hold(task, actor)

    def abort(self, task: Task, actor: Actor) -> Task:
        return self.freezer.abort(task, actor)

    def resume(self, task: Task, actor: Actor) -> Task:
        return self.freezer.resume(task, actor)

    def restore(self, task: Task, actor: Actor) -> Task:
        return self.freezer.restore(task, actor)

    # ------------------------------------------------------------------
    # Dependencies and schedule
    # ------------------------------------------------------------------

    def set_dependencies(self, task: Task, dependency_ids: Iterable[str], project_tasks: Iterable[Task]) -> Task:
        """Replace the prerequisite set of ``task``.

        With ``align_start_to_dependencies`` the start date moves to the latest
        due date among the prerequisites found in the snapshot; the due date
        follows only when the new start would pass it, keeping the duration.
        """
        self.freezer.ensure_not_frozen(task)
        ids = validate_dependencies(task.id, dependency_ids)
        graph = DependencyGraph(project_tasks)
        if self.settings.reject_dependency_cycles:
            cycle = graph.find_cycle(overrides={task.id: ids})
            if cycle is not None:
                raise DependencyCycleError(task.id, cycle)

        update: dict[str, object] = {"dependencies": ids}
        candidate = task.model_copy(update=update)
        dangling = graph.dangling_dependencies(candidate)
        if dangling:
            logger.warning("task=%s lists unknown prerequisite(s): %s", task.id, ", ".join(dangling))

        prerequisites = graph.prerequisites(candidate)
        if self.settings.align_start_to_dependencies and prerequisites:
            start = max(dep.due_date for dep in prerequisites)
            update["start_date"] = start
            if start > task.due_date:
                update["due_date"] = start + (task.due_date - task.start_date)
        return task.model_copy(update=update)

    def add_dependency(self, task: Task, dependency_id: str, project_tasks: Iterable[Task]) -> Task:
        return self.set_dependencies(task, task.dependencies + (dependency_id,), project_tasks)

    def remove_dependency(self, task: Task, dependency_id: str, project_tasks: Iterable[Task]) -> Task:
        return self.set_dependencies(task, [dep for dep in task.dependencies if dep != dependency_id], project_tasks)

    def reschedule(self, task: Task, *, start_date: date, due_date: date) -> Task:
        self.freezer.ensure_not_frozen(task)
        if due_date < start_date:
            raise InvalidTaskEditError(
                task.id, f"Due date {due_date.isoformat()} is before start date {start_date.isoformat()}"
            )
        return task.model_copy(update={"start_date": start_date, "due_date": due_date})

    def set_priority(self, task: Task, priority: Priority) -> Task:
        # Priority is board ordering only; no dependency gate.
        self.freezer.ensure_not_frozen(task)
        return task.model_copy(update={"priority": priority})

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(self, task: Task, actor: Actor, text: str) -> Task:
        self.freezer.ensure_not_frozen(task)
        if not text.strip():
            raise InvalidTaskEditError(task.id, "Comment text must be non-empty")
        comment = Comment(id=self.new_id(), author_id=actor.user_id, text=text.strip(), timestamp=self.clock())
        return task.model_copy(update={"comments": task.comments + (comment,)})

    # ------------------------------------------------------------------
    # Overdue sweep
    # ------------------------------------------------------------------

    def mark_overdue(self, task: Task, today: date) -> Task:
        if not is_overdue(task, today):
            return task
        return task.model_copy(update={"status": TaskStatus.OVERDUE})

    def sweep_overdue(self, tasks: Iterable[Task], today: date) -> list[Task]:
        """Return the tasks that become OVERDUE as of ``today``, already updated."""
        swept = [self.mark_overdue(task, today) for task in tasks if is_overdue(task, today)]
        if swept:
            logger.info("overdue sweep %s: %d task(s)", today.isoformat(), len(swept))
        return swept

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_item(self, task: Task, item_id: str) -> tuple[ChecklistItem, ...]:
        if not any(item.id == item_id for item in task.checklist):
            raise InvalidTaskEditError(task.id, f"Task {task.id} has no checklist item {item_id}")
        return task.checklist

    def _reopened(self, task: Task, status: TaskStatus) -> Task:
        # Leaving DONE by hand needs a fresh completion sign-off.
        if task.status == TaskStatus.DONE and status != TaskStatus.DONE:
            return task.model_copy(update={"approvals": self.gate.reset(task.approvals, ApprovalStage.COMPLETION)})
        return task

    def _ensure_unblocked(self, task: Task, graph: DependencyGraph) -> None:
        blocking = graph.blocking_tasks(task)
        if blocking:
            raise DependencyBlockedError(task.id, blocking)

    def _derive_and_commit(self, before: Task, candidate: Task, project_tasks: Iterable[Task]) -> Task:
        return self._commit(before, candidate, DependencyGraph(project_tasks), self.deriver.derive(candidate))

    def _commit(self, before: Task, candidate: Task, graph: DependencyGraph, status: TaskStatus) -> Task:
        if moves_forward(before.status, status):
            self._ensure_unblocked(candidate, graph)
        if status == candidate.status:
            return candidate
        logger.info("status task=%s %s -> %s", before.id, before.status.value, status.value)
        return candidate.model_copy(update={"status": status})
