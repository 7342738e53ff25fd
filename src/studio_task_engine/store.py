from __future__ import annotations

import fcntl
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Iterator, Protocol

from pydantic import ValidationError

from .canonical import fingerprint
from .dependencies import DependencyGraph
from .engine import TaskEngine
from .errors import TaskNotFoundError, TaskRejection
from .gantt import GanttLayout, GanttLayoutEngine
from .identity import RoleProvider
from .models import (
    Actor,
    ApprovalSlot,
    ApprovalStage,
    Project,
    ProjectSnapshot,
    Task,
    TaskStatus,
    VoteAction,
)

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Persistence collaborator. The engine never calls it; ``TaskService`` does."""

    def load_project_tasks(self, project_id: str) -> list[Task]: ...

    def save_task(self, project_id: str, task: Task) -> None: ...

    def load_project(self, project_id: str) -> Project | None: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryTaskStore:
    def __init__(self) -> None:
        self._snapshots: dict[str, ProjectSnapshot] = {}

    def put_project(self, project: Project, tasks: Iterable[Task] = ()) -> None:
        self._snapshots[project.id] = ProjectSnapshot(project=project, tasks=tuple(tasks))

    def load_project_tasks(self, project_id: str) -> list[Task]:
        return list(self._snapshots.get(project_id, ProjectSnapshot()).tasks)

    def load_project(self, project_id: str) -> Project | None:
        return self._snapshots.get(project_id, ProjectSnapshot()).project

    def save_task(self, project_id: str, task: Task) -> None:
        snapshot = self._snapshots.get(project_id, ProjectSnapshot())
        self._snapshots[project_id] = snapshot.with_task(task)


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------

_LOCK_SUFFIX = ".lock"


@contextmanager
def _locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on a ``.lock`` sidecar of *path*.

    The sidecar stays put while the data file itself is atomically replaced.
    """
    lock_path = path.with_suffix(path.suffix + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to a temp file next to *path*, then ``os.replace`` it in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def sanitize_project_id(project_id: str) -> str:
    """Make a project id safe as a file name.

    Raises:
        ValueError: If the id is empty or contains no safe characters.
    """
    value = project_id.strip()
    if not value:
        raise ValueError("project_id must be non-empty")
    value = re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-.")
    if not value:
        raise ValueError("project_id contains no filesystem-safe characters")
    return value[:128]


class JsonFileTaskStore:
    """One JSON document per project: ``<root>/projects/<project_id>.json``.

    Each ``save_task`` is a locked read-modify-write that replaces the task
    with the same id, so concurrent writers of different tasks never lose each
    other's work; two writers of the same task resolve last-writer-wins.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.projects_dir = root / "projects"
        self.projects_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, project_id: str) -> Path:
        return self.projects_dir / f"{sanitize_project_id(project_id)}.json"

    def load_snapshot(self, project_id: str) -> ProjectSnapshot:
        path = self.path_for(project_id)
        if not path.is_file():
            return ProjectSnapshot()
        with _locked_file(path):
            return self._read(path)

    def load_project_tasks(self, project_id: str) -> list[Task]:
        return list(self.load_snapshot(project_id).tasks)

    def load_project(self, project_id: str) -> Project | None:
        return self.load_snapshot(project_id).project

    def save_task(self, project_id: str, task: Task) -> None:
        path = self.path_for(project_id)
        with _locked_file(path):
            snapshot = self._read(path) if path.is_file() else ProjectSnapshot()
            _atomic_write_text(path, snapshot.with_task(task).model_dump_json(by_alias=True, indent=2))

    def save_project(self, project: Project) -> None:
        path = self.path_for(project.id)
        with _locked_file(path):
            snapshot = self._read(path) if path.is_file() else ProjectSnapshot()
            updated = snapshot.model_copy(update={"project": project})
            _atomic_write_text(path, updated.model_dump_json(by_alias=True, indent=2))

    def _read(self, path: Path) -> ProjectSnapshot:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"project file at {path} contains invalid UTF-8 data") from exc
        if not text.strip():
            raise ValueError(f"project file at {path} is empty")
        try:
            return ProjectSnapshot.model_validate_json(text)
        except ValidationError as exc:
            raise ValueError(f"project file at {path} failed validation: {exc}") from exc


# ---------------------------------------------------------------------------
# Adapter: load latest snapshot -> run engine -> save result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MutationResult:
    """Outcome of one mutation. On rejection ``task`` is the unchanged task."""

    task: Task
    rejection: TaskRejection | None = None
    saved: bool = False

    @property
    def ok(self) -> bool:
        return self.rejection is None


Operation = Callable[[Task, list[Task]], Task]


class TaskService:
    """Wraps every engine operation in load-latest, compute, save.

    Rejections come back as ``MutationResult.rejection`` and the store is not
    written. Before saving, the task is re-read; if another writer changed it
    in the meantime the operation is re-run on that fresher snapshot.
    """

    def __init__(self, store: TaskStore, roles: RoleProvider, *, engine: TaskEngine | None = None) -> None:
        self.store = store
        self.roles = roles
        self.engine = engine if engine is not None else TaskEngine()

    def actor(self, user_id: str, project_id: str) -> Actor:
        return Actor(user_id=user_id, capability=self.roles.capability(user_id, project_id))

    # -- read side --------------------------------------------------------

    def blocked_report(self, project_id: str) -> dict[str, list[Task]]:
        """Blocking prerequisites per blocked task (frozen tasks included, with no blockers listed)."""
        graph = DependencyGraph(self.store.load_project_tasks(project_id))
        return {task.id: graph.blocking_tasks(task) for task in graph.tasks.values() if graph.is_blocked(task)}

    def gantt(self, project_id: str) -> GanttLayout:
        project = self.store.load_project(project_id)
        engine = GanttLayoutEngine(self.engine.settings)
        return engine.layout(self.store.load_project_tasks(project_id), project.bounds if project else None)

    # -- mutations ----------------------------------------------------------

    def toggle_checklist_item(self, project_id: str, task_id: str, user_id: str, item_id: str) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(
            project_id, task_id, lambda task, tasks: self.engine.toggle_checklist_item(task, item_id, actor, tasks)
        )

    def vote(
        self,
        project_id: str,
        task_id: str,
        user_id: str,
        *,
        stage: ApprovalStage,
        slot: ApprovalSlot,
        action: VoteAction,
    ) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(
            project_id,
            task_id,
            lambda task, tasks: self.engine.vote(
                task, stage=stage, slot=slot, action=action, actor=actor, project_tasks=tasks
            ),
        )

    def advance(self, project_id: str, task_id: str) -> MutationResult:
        return self._mutate(project_id, task_id, lambda task, tasks: self.engine.advance(task, tasks))

    def set_status(self, project_id: str, task_id: str, status: TaskStatus) -> MutationResult:
        return self._mutate(project_id, task_id, lambda task, tasks: self.engine.set_status(task, status, tasks))

    def set_dependencies(self, project_id: str, task_id: str, dependency_ids: list[str]) -> MutationResult:
        return self._mutate(
            project_id, task_id, lambda task, tasks: self.engine.set_dependencies(task, dependency_ids, tasks)
        )

    def freeze(self, project_id: str, task_id: str, user_id: str, kind: TaskStatus) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(project_id, task_id, lambda task, _tasks: self.engine.freeze(task, kind, actor))

    def resume(self, project_id: str, task_id: str, user_id: str) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(project_id, task_id, lambda task, _tasks: self.engine.resume(task, actor))

    def restore(self, project_id: str, task_id: str, user_id: str) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(project_id, task_id, lambda task, _tasks: self.engine.restore(task, actor))

    def add_comment(self, project_id: str, task_id: str, user_id: str, text: str) -> MutationResult:
        actor = self.actor(user_id, project_id)
        return self._mutate(project_id, task_id, lambda task, _tasks: self.engine.add_comment(task, actor, text))

    def run_overdue_sweep(self, project_id: str, today: date) -> list[Task]:
        """Persist OVERDUE on every eligible task; returns what was written."""
        swept = self.engine.sweep_overdue(self.store.load_project_tasks(project_id), today)
        for task in swept:
            self.store.save_task(project_id, task)
        return swept

    def _mutate(self, project_id: str, task_id: str, operation: Operation) -> MutationResult:
        tasks = self.store.load_project_tasks(project_id)
        task = _find(tasks, project_id, task_id)
        try:
            updated = operation(task, tasks)
            latest = self.store.load_project_tasks(project_id)
            latest_task = _find(latest, project_id, task_id)
            if fingerprint(latest_task) != fingerprint(task):
                logger.info("task=%s changed during update, re-running on latest snapshot", task_id)
                task, tasks = latest_task, latest
                updated = operation(task, tasks)
        except TaskRejection as exc:
            logger.info("rejected %s project=%s task=%s: %s", exc.code, project_id, task_id, exc.message)
            return MutationResult(task=task, rejection=exc)

        if fingerprint(updated) == fingerprint(task):
            return MutationResult(task=updated)
        self.store.save_task(project_id, updated)
        logger.info("saved project=%s task=%s status=%s", project_id, task_id, updated.status.value)
        return MutationResult(task=updated, saved=True)


def _find(tasks: list[Task], project_id: str, task_id: str) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(project_id, task_id)
