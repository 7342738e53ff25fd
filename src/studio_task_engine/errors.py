from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ApprovalSlot, ApprovalStage, Capability, Task, TaskStatus, VoteAction


class TaskRejection(Exception):
    """A refused mutation. The task it names is left exactly as it was."""

    code = "rejected"

    def __init__(self, task_id: str, message: str) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.message = message


class FrozenTaskError(TaskRejection):
    code = "task_frozen"

    def __init__(self, task_id: str, status: TaskStatus) -> None:
        super().__init__(task_id, f"Action denied: task {task_id} is frozen ({status.value})")
        self.status = status


class DependencyBlockedError(TaskRejection):
    code = "dependency_blocked"

    def __init__(self, task_id: str, blocking: list[Task]) -> None:
        names = ", ".join(task.title or task.id for task in blocking)
        super().__init__(task_id, f"Task {task_id} is blocked by: {names}")
        self.blocking = tuple(blocking)

    @property
    def blocking_ids(self) -> list[str]:
        return [task.id for task in self.blocking]


class ApprovalRequiredError(TaskRejection):
    code = "approval_required"

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id, f"Task {task_id} needs client and oversight completion approval")


class UnauthorizedActionError(TaskRejection):
    code = "unauthorized"

    def __init__(self, task_id: str, actor_id: str, action: str) -> None:
        super().__init__(task_id, f"User {actor_id} may not {action} task {task_id}")
        self.actor_id = actor_id
        self.action = action


class UnauthorizedVoteError(UnauthorizedActionError):
    code = "unauthorized_vote"

    def __init__(
        self,
        task_id: str,
        actor_id: str,
        capability: Capability,
        stage: ApprovalStage,
        slot: ApprovalSlot,
        action: VoteAction,
    ) -> None:
        super().__init__(task_id, actor_id, f"{action.value} the {slot.value} {stage.value} vote on")
        self.capability = capability
        self.stage = stage
        self.slot = slot
        self.vote_action = action


class SelfDependencyError(TaskRejection):
    code = "self_dependency"

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id, f"Task {task_id} cannot depend on itself")


class DependencyCycleError(TaskRejection):
    code = "dependency_cycle"

    def __init__(self, task_id: str, cycle: list[str]) -> None:
        super().__init__(task_id, f"Dependency cycle: {' -> '.join(cycle)}")
        self.cycle = tuple(cycle)


class InvalidTransitionError(TaskRejection):
    code = "invalid_transition"


class InvalidTaskEditError(TaskRejection):
    code = "invalid_edit"


class TaskNotFoundError(LookupError):
    def __init__(self, project_id: str, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found in project {project_id}")
        self.project_id = project_id
        self.task_id = task_id
