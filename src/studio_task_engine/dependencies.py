from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from typing import Iterable

from .errors import SelfDependencyError
from .models import Task, TaskStatus

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """Dependency queries over one project snapshot.

    Edges point from a task to the prerequisites listed in its
    ``dependencies``. Ids that do not resolve inside the snapshot are ignored,
    so a dangling reference counts as satisfied; ``dangling_dependencies``
    reports them for review but nothing rejects them.
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self.tasks: dict[str, Task] = {task.id: task for task in tasks}

    def get(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def prerequisites(self, task: Task) -> list[Task]:
        return [self.tasks[dep_id] for dep_id in task.dependencies if dep_id in self.tasks]

    def blocking_tasks(self, task: Task) -> list[Task]:
        """Prerequisites that are not DONE, in dependency order."""
        return [dep for dep in self.prerequisites(task) if dep.status != TaskStatus.DONE]

    def is_blocked(self, task: Task) -> bool:
        # Frozen tasks must not receive progress whatever their prerequisites.
        if task.is_frozen:
            return True
        return bool(self.blocking_tasks(task))

    def dangling_dependencies(self, task: Task) -> list[str]:
        return [dep_id for dep_id in task.dependencies if dep_id not in self.tasks]

    def dependents(self, task_id: str) -> list[Task]:
        return [task for task in self.tasks.values() if task_id in task.dependencies]

    def find_cycle(self, *, overrides: dict[str, tuple[str, ...]] | None = None) -> list[str] | None:
        """Return one dependency cycle as a closed path of ids, or None.

        ``overrides`` replaces the dependency set of the given tasks, which lets
        a caller test a proposed edit before applying it.
        """
        adjacency = {task_id: task.dependencies for task_id, task in self.tasks.items()}
        if overrides:
            adjacency.update(overrides)
        return _find_cycle(adjacency)

    def dependency_order(self) -> list[Task]:
        """Order tasks so prerequisites come before their dependents.

        Ready tasks are released earliest due date first. Tasks caught in a
        cycle can never become ready; they are appended in snapshot order.
        """
        position = {task_id: idx for idx, task_id in enumerate(self.tasks)}
        indegree = {task_id: 0 for task_id in self.tasks}
        edges: dict[str, list[str]] = defaultdict(list)
        for task in self.tasks.values():
            for dep in self.prerequisites(task):
                if dep.id == task.id:
                    continue
                indegree[task.id] += 1
                edges[dep.id].append(task.id)

        ready = [
            (self.tasks[task_id].due_date, position[task_id], task_id)
            for task_id, degree in indegree.items()
            if degree == 0
        ]
        heapq.heapify(ready)
        ordered: list[Task] = []
        while ready:
            _, _, current = heapq.heappop(ready)
            ordered.append(self.tasks[current])
            for nxt in edges[current]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    heapq.heappush(ready, (self.tasks[nxt].due_date, position[nxt], nxt))

        if len(ordered) != len(self.tasks):
            placed = {task.id for task in ordered}
            stuck = [task for task in self.tasks.values() if task.id not in placed]
            logger.debug("dependency_order: %d task(s) sit on a cycle", len(stuck))
            ordered.extend(stuck)
        return ordered


def _find_cycle(adjacency: dict[str, tuple[str, ...]]) -> list[str] | None:
    # Iterative three-colour DFS: ``path`` is the grey chain, ``stack`` holds
    # the unvisited prerequisites of each node on it.
    color = dict.fromkeys(adjacency, _WHITE)
    for root in adjacency:
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        path = [root]
        stack = [iter(adjacency[root])]
        while stack:
            for nxt in stack[-1]:
                if nxt not in color:
                    continue
                if color[nxt] == _GRAY:
                    return path[path.index(nxt):] + [nxt]
                if color[nxt] == _WHITE:
                    color[nxt] = _GRAY
                    path.append(nxt)
                    stack.append(iter(adjacency[nxt]))
                    break
            else:
                color[path.pop()] = _BLACK
                stack.pop()
    return None


def is_blocked(task: Task, all_tasks: Iterable[Task]) -> bool:
    return DependencyGraph(all_tasks).is_blocked(task)


def blocking_tasks(task: Task, all_tasks: Iterable[Task]) -> list[Task]:
    return DependencyGraph(all_tasks).blocking_tasks(task)


def validate_dependencies(task_id: str, dependency_ids: Iterable[str]) -> tuple[str, ...]:
    """Return the dependency ids de-duplicated in order; a task may not list itself."""
    ids = tuple(dict.fromkeys(dep_id.strip() for dep_id in dependency_ids if dep_id.strip()))
    if task_id in ids:
        raise SelfDependencyError(task_id)
    return ids
