from importlib.metadata import version

from .approvals import ApprovalGate
from .dependencies import DependencyGraph, blocking_tasks, is_blocked
from .engine import TaskEngine
from .errors import (
    ApprovalRequiredError,
    DependencyBlockedError,
    DependencyCycleError,
    FrozenTaskError,
    InvalidTaskEditError,
    InvalidTransitionError,
    SelfDependencyError,
    TaskNotFoundError,
    TaskRejection,
    UnauthorizedActionError,
    UnauthorizedVoteError,
)
from .freeze import FreezeController
from .gantt import DependencyConflict, GanttLayout, GanttLayoutEngine, GanttRow
from .identity import DirectoryRoleProvider, RoleProvider, capability_for
from .models import (
    Actor,
    ApprovalFlow,
    ApprovalSlot,
    ApprovalStage,
    ApprovalVote,
    Capability,
    ChecklistItem,
    Comment,
    Priority,
    Project,
    ProjectBounds,
    ProjectSnapshot,
    Role,
    Task,
    TaskApprovals,
    TaskStatus,
    User,
    VoteAction,
    VoteStatus,
)
from .settings import EngineSettings
from .status import StatusDeriver, project_progress, task_progress
from .store import InMemoryTaskStore, JsonFileTaskStore, MutationResult, TaskService, TaskStore


def get_version() -> str:
    try:
        return version("studio-task-engine")
    except Exception:
        return "0.0.0"


__all__ = [
    "Actor",
    "ApprovalFlow",
    "ApprovalGate",
    "ApprovalRequiredError",
    "ApprovalSlot",
    "ApprovalStage",
    "ApprovalVote",
    "Capability",
    "ChecklistItem",
    "Comment",
    "DependencyBlockedError",
    "DependencyConflict",
    "DependencyCycleError",
    "DependencyGraph",
    "DirectoryRoleProvider",
    "EngineSettings",
    "FreezeController",
    "FrozenTaskError",
    "GanttLayout",
    "GanttLayoutEngine",
    "GanttRow",
    "InMemoryTaskStore",
    "InvalidTaskEditError",
    "InvalidTransitionError",
    "JsonFileTaskStore",
    "MutationResult",
    "Priority",
    "Project",
    "ProjectBounds",
    "ProjectSnapshot",
    "Role",
    "RoleProvider",
    "SelfDependencyError",
    "StatusDeriver",
    "Task",
    "TaskApprovals",
    "TaskEngine",
    "TaskNotFoundError",
    "TaskRejection",
    "TaskService",
    "TaskStatus",
    "TaskStore",
    "UnauthorizedActionError",
    "UnauthorizedVoteError",
    "User",
    "VoteAction",
    "VoteStatus",
    "blocking_tasks",
    "capability_for",
    "get_version",
    "is_blocked",
    "project_progress",
    "task_progress",
]
