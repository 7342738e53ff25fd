from __future__ import annotations

import logging

from .errors import FrozenTaskError, InvalidTransitionError, UnauthorizedActionError
from .models import FROZEN_STATUSES, Actor, Task, TaskStatus
from .status import StatusDeriver

logger = logging.getLogger(__name__)


class FreezeController:
    """Administrative override that suspends all status automation.

    ON_HOLD and ABORTED are entered and left only through oversight actions.
    While a task is frozen every other mutation is refused with
    ``FrozenTaskError``.
    """

    def __init__(self, deriver: StatusDeriver | None = None) -> None:
        self.deriver = deriver if deriver is not None else StatusDeriver()

    def ensure_not_frozen(self, task: Task) -> None:
        if task.is_frozen:
            raise FrozenTaskError(task.id, task.status)

    def freeze(self, task: Task, kind: TaskStatus, actor: Actor) -> Task:
        """Put a task on hold or abort it, regardless of dependencies or checklist.

        Freezing is idempotent: a task already in ``kind`` is returned as is, and
        so is an aborted task asked to go on hold. ON_HOLD -> ABORTED is allowed.
        """
        if kind not in FROZEN_STATUSES:
            raise InvalidTransitionError(task.id, f"{kind.value} is not a freeze status")
        self._require_oversight(task, actor, "freeze")
        if task.status == kind or task.status == TaskStatus.ABORTED:
            return task
        logger.info("freeze task=%s %s -> %s by=%s", task.id, task.status.value, kind.value, actor.user_id)
        return task.model_copy(update={"status": kind})

    def hold(self, task: Task, actor: Actor) -> Task:
        return self.freeze(task, TaskStatus.ON_HOLD, actor)

    def abort(self, task: Task, actor: Actor) -> Task:
        return self.freeze(task, TaskStatus.ABORTED, actor)

    def resume(self, task: Task, actor: Actor) -> Task:
        """Lift a freeze, landing on whatever the checklist and approvals imply.

        Checklist-free tasks land on IN_PROGRESS. The move is not dependency
        gated. Resuming a task that is not frozen changes nothing.
        """
        self._require_oversight(task, actor, "resume")
        if not task.is_frozen:
            return task
        status = self.deriver.resumed_status(task)
        logger.info("resume task=%s %s -> %s by=%s", task.id, task.status.value, status.value, actor.user_id)
        return task.model_copy(update={"status": status})

    def restore(self, task: Task, actor: Actor) -> Task:
        self._require_oversight(task, actor, "restore")
        if task.status != TaskStatus.ABORTED:
            raise InvalidTransitionError(task.id, f"Task {task.id} is not aborted")
        return self.resume(task, actor)

    def _require_oversight(self, task: Task, actor: Actor, action: str) -> None:
        if not actor.is_oversight:
            raise UnauthorizedActionError(task.id, actor.user_id, action)
