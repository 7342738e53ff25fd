from __future__ import annotations

import logging
from datetime import datetime

from .errors import UnauthorizedVoteError
from .models import (
    Actor,
    ApprovalFlow,
    ApprovalSlot,
    ApprovalStage,
    ApprovalVote,
    Capability,
    TaskApprovals,
    VoteAction,
    VoteStatus,
)

logger = logging.getLogger(__name__)

_SLOT_CAPABILITY = {
    ApprovalSlot.CLIENT: Capability.CLIENT,
    ApprovalSlot.OVERSIGHT: Capability.OVERSIGHT,
}


def is_satisfied(flow: ApprovalFlow) -> bool:
    return flow.is_satisfied


class ApprovalGate:
    """Start and completion sign-off, each needing a client and an oversight vote.

    The gate only records votes. What a vote does to the task status is decided
    by ``TaskEngine`` through ``StatusDeriver``.
    """

    def can_vote(self, actor: Actor, slot: ApprovalSlot, action: VoteAction) -> bool:
        if action == VoteAction.REVOKE:
            # Undoing a mistaken vote is an oversight correction, on either slot.
            return actor.capability == Capability.OVERSIGHT
        return actor.capability == _SLOT_CAPABILITY[slot]

    def vote(
        self,
        approvals: TaskApprovals,
        *,
        task_id: str,
        stage: ApprovalStage,
        slot: ApprovalSlot,
        action: VoteAction,
        actor: Actor,
        at: datetime,
    ) -> TaskApprovals:
        """Record one vote and return the new approval state.

        Raises:
            UnauthorizedVoteError: If the actor does not hold the slot's capability
                (or oversight, for a revoke).
        """
        if not self.can_vote(actor, slot, action):
            raise UnauthorizedVoteError(task_id, actor.user_id, actor.capability, stage, slot, action)

        if action == VoteAction.REVOKE:
            ballot = ApprovalVote()
        else:
            status = VoteStatus.APPROVED if action == VoteAction.APPROVE else VoteStatus.REJECTED
            ballot = ApprovalVote(status=status, voted_by=actor.user_id, timestamp=at)

        flow = approvals.flow(stage).with_vote(slot, ballot)
        logger.debug(
            "vote task=%s stage=%s slot=%s action=%s by=%s satisfied=%s",
            task_id,
            stage.value,
            slot.value,
            action.value,
            actor.user_id,
            flow.is_satisfied,
        )
        return approvals.with_flow(stage, flow)

    def reset(self, approvals: TaskApprovals, stage: ApprovalStage) -> TaskApprovals:
        return approvals.with_flow(stage, ApprovalFlow())
