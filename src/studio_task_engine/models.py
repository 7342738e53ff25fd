from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


DEFAULT_CATEGORY = "General"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    DONE = "Done"
    OVERDUE = "Overdue"
    ON_HOLD = "On Hold"
    ABORTED = "Aborted"


FROZEN_STATUSES = frozenset({TaskStatus.ON_HOLD, TaskStatus.ABORTED})

# Statuses the overdue sweep leaves alone.
OVERDUE_EXEMPT_STATUSES = frozenset(
    {TaskStatus.DONE, TaskStatus.OVERDUE, TaskStatus.ABORTED, TaskStatus.ON_HOLD, TaskStatus.REVIEW}
)

# Forward position on the TODO -> DONE track; frozen states are off-track.
PROGRESS_RANK: dict[TaskStatus, int] = {
    TaskStatus.TODO: 0,
    TaskStatus.OVERDUE: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.REVIEW: 2,
    TaskStatus.DONE: 3,
}


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VoteStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStage(str, Enum):
    START = "start"
    COMPLETION = "completion"


class ApprovalSlot(str, Enum):
    CLIENT = "client"
    OVERSIGHT = "oversight"


class VoteAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REVOKE = "revoke"


class Role(str, Enum):
    ADMIN = "Admin"
    DESIGNER = "Designer"
    VENDOR = "Vendor"
    CLIENT = "Client"


class Capability(str, Enum):
    """What an actor may sign off on within one project."""

    CLIENT = "client"
    OVERSIGHT = "oversight"
    NONE = "none"


class _DocumentModel(BaseModel):
    """Immutable model stored as a camelCase document."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class ChecklistItem(_DocumentModel):
    id: str = Field(min_length=1)
    title: str
    is_completed: bool = False


class Comment(_DocumentModel):
    id: str = Field(min_length=1)
    author_id: str = Field(validation_alias=AliasChoices("authorId", "author_id", "userId"))
    text: str
    timestamp: datetime


class ApprovalVote(_DocumentModel):
    status: VoteStatus = VoteStatus.PENDING
    voted_by: str | None = None
    timestamp: datetime | None = None


class ApprovalFlow(_DocumentModel):
    """Two-party sign-off: one client vote and one oversight (admin/designer) vote."""

    client: ApprovalVote = Field(default_factory=ApprovalVote)
    # Dashboard documents key the oversight vote as "admin".
    oversight: ApprovalVote = Field(
        default_factory=ApprovalVote,
        validation_alias=AliasChoices("oversight", "admin"),
    )

    @property
    def is_satisfied(self) -> bool:
        return self.client.status == VoteStatus.APPROVED and self.oversight.status == VoteStatus.APPROVED

    @property
    def has_rejection(self) -> bool:
        return VoteStatus.REJECTED in (self.client.status, self.oversight.status)

    def slot(self, slot: ApprovalSlot) -> ApprovalVote:
        if slot == ApprovalSlot.CLIENT:
            return self.client
        return self.oversight

    def with_vote(self, slot: ApprovalSlot, vote: ApprovalVote) -> ApprovalFlow:
        return self.model_copy(update={slot.value: vote})


class TaskApprovals(_DocumentModel):
    start: ApprovalFlow = Field(default_factory=ApprovalFlow)
    completion: ApprovalFlow = Field(default_factory=ApprovalFlow)

    def flow(self, stage: ApprovalStage) -> ApprovalFlow:
        if stage == ApprovalStage.START:
            return self.start
        return self.completion

    def with_flow(self, stage: ApprovalStage, flow: ApprovalFlow) -> TaskApprovals:
        return self.model_copy(update={stage.value: flow})


class Task(_DocumentModel):
    """One schedulable unit of work inside a project.

    Values are immutable: every engine operation returns a new ``Task`` and the
    caller persists it. ``dependencies`` keeps insertion order and never holds
    duplicates; ``checklist`` order is display order only.
    """

    id: str = Field(min_length=1)
    title: str
    description: str = ""
    category: str = DEFAULT_CATEGORY
    priority: Priority = Priority.MEDIUM
    assignee_id: str | None = None
    start_date: date
    due_date: date
    status: TaskStatus = TaskStatus.TODO
    dependencies: tuple[str, ...] = ()
    checklist: tuple[ChecklistItem, ...] = Field(
        default=(),
        validation_alias=AliasChoices("checklist", "subtasks"),
    )
    approvals: TaskApprovals = Field(default_factory=TaskApprovals)
    comments: tuple[Comment, ...] = ()

    @field_validator("assignee_id", mode="before")
    @classmethod
    def _blank_assignee_is_unassigned(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("dependencies", "checklist", "comments", mode="before")
    @classmethod
    def _null_sequence_is_empty(cls, value: object) -> object:
        return () if value is None else value

    @field_validator("dependencies")
    @classmethod
    def _dedupe_dependencies(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(value))

    @property
    def is_frozen(self) -> bool:
        return self.status in FROZEN_STATUSES

    @property
    def has_checklist(self) -> bool:
        return bool(self.checklist)

    @property
    def completed_items(self) -> int:
        return sum(1 for item in self.checklist if item.is_completed)


@dataclass(frozen=True)
class ProjectBounds:
    start: date
    end: date


class Project(_DocumentModel):
    """Read-only view of the project that owns a task set."""

    id: str = Field(min_length=1)
    name: str = ""
    client_id: str | None = None
    lead_designer_id: str | None = None
    start_date: date | None = None
    deadline: date | None = None

    @property
    def bounds(self) -> ProjectBounds | None:
        if self.start_date is None or self.deadline is None:
            return None
        return ProjectBounds(start=self.start_date, end=self.deadline)


class ProjectSnapshot(_DocumentModel):
    """A project and its full task set, as read in one go from the task store."""

    project: Project | None = None
    tasks: tuple[Task, ...] = ()

    def task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def with_task(self, task: Task) -> ProjectSnapshot:
        """Replace the task with the same id, or append it (last writer wins)."""
        if self.task(task.id) is None:
            return self.model_copy(update={"tasks": self.tasks + (task,)})
        return self.model_copy(update={"tasks": tuple(task if t.id == task.id else t for t in self.tasks)})


class User(_DocumentModel):
    id: str = Field(min_length=1)
    name: str = ""
    role: Role
    email: str | None = None


@dataclass(frozen=True)
class Actor:
    """The user performing a mutation, with their capability on the project."""

    user_id: str
    capability: Capability = Capability.NONE

    @property
    def is_oversight(self) -> bool:
        return self.capability == Capability.OVERSIGHT
