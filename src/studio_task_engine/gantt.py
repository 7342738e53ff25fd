"""Timeline (Gantt) projection of a project's tasks.

Pure read-side computation: tasks in, positions out. Positions are fractions
of a shared date axis, so ``left`` and ``left + width`` always fall inside
``[0, 1]``. The layout never alters task dates; ``gantt_min_width`` only keeps
zero-length and inverted tasks visible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from .models import ProjectBounds, Task
from .settings import EngineSettings

logger = logging.getLogger(__name__)

# Float slack when comparing bar edges, so adjacent bars never count as overlapping.
_EDGE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class GanttRow:
    task: Task
    left: float
    width: float
    conflict: bool = False

    @property
    def right(self) -> float:
        return self.left + self.width


@dataclass(frozen=True)
class DependencyConflict:
    """A prerequisite whose drawn bar runs past the start of its dependent."""

    parent_id: str
    child_id: str
    overlap: float


@dataclass(frozen=True)
class GanttLayout:
    axis_start: date | None
    axis_end: date | None
    rows: tuple[GanttRow, ...] = ()
    conflicts: tuple[DependencyConflict, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def row(self, task_id: str) -> GanttRow | None:
        for row in self.rows:
            if row.task.id == task_id:
                return row
        return None


class GanttLayoutEngine:
    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings if settings is not None else EngineSettings()
        self._category_rank = {name.lower(): idx for idx, name in enumerate(self.settings.category_order)}

    def category_key(self, category: str) -> tuple[int, str]:
        """Canonical categories in configured order; unknown ones after them, alphabetically."""
        name = category.strip().lower()
        return self._category_rank.get(name, len(self._category_rank)), name

    def order_rows(self, tasks: Iterable[Task]) -> list[Task]:
        # sorted() is stable: equal start dates keep their input order.
        return sorted(tasks, key=lambda task: (self.category_key(task.category), task.start_date))

    def axis(self, tasks: list[Task], bounds: ProjectBounds | None = None) -> tuple[date, date]:
        starts = [task.start_date for task in tasks] + [task.due_date for task in tasks]
        ends = list(starts)
        if bounds is not None:
            starts.append(bounds.start)
            ends.append(bounds.end)
        padding = timedelta(days=self.settings.gantt_padding_days)
        return min(starts) - padding, max(ends) + padding

    def layout(self, tasks: Iterable[Task], bounds: ProjectBounds | None = None) -> GanttLayout:
        task_list = list(tasks)
        if not task_list:
            return GanttLayout(axis_start=None, axis_end=None)

        axis_start, axis_end = self.axis(task_list, bounds)
        span = (axis_end - axis_start).days
        min_width = self.settings.gantt_min_width

        positions: dict[str, tuple[float, float]] = {}
        ordered = self.order_rows(task_list)
        for task in ordered:
            width = min(max((task.due_date - task.start_date).days / span, min_width), 1.0)
            # A minimum-width bar at the axis end is pulled left rather than narrowed.
            left = max(0.0, min((task.start_date - axis_start).days / span, 1.0 - width))
            positions[task.id] = (left, width)

        conflicts: list[DependencyConflict] = []
        conflicted: set[str] = set()
        for child in ordered:
            child_left, _ = positions[child.id]
            for parent_id in child.dependencies:
                if parent_id == child.id or parent_id not in positions:
                    continue
                parent_left, parent_width = positions[parent_id]
                overlap = parent_left + parent_width - child_left
                if overlap > _EDGE_TOLERANCE:
                    conflicts.append(DependencyConflict(parent_id=parent_id, child_id=child.id, overlap=overlap))
                    conflicted.add(child.id)

        rows = tuple(
            GanttRow(
                task=task,
                left=positions[task.id][0],
                width=positions[task.id][1],
                conflict=task.id in conflicted,
            )
            for task in ordered
        )
        logger.debug(
            "gantt layout: %d rows, axis %s..%s, %d conflict(s)",
            len(rows),
            axis_start.isoformat(),
            axis_end.isoformat(),
            len(conflicts),
        )
        return GanttLayout(axis_start=axis_start, axis_end=axis_end, rows=rows, conflicts=tuple(conflicts))


def layout(tasks: Iterable[Task], bounds: ProjectBounds | None = None, *, settings: EngineSettings | None = None) -> GanttLayout:
    return GanttLayoutEngine(settings).layout(tasks, bounds)
