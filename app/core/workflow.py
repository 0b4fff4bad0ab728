"""Workflow / state machine for actions and the review chain.

This module centralizes *all* transition rules in one place:
1) Action status edges (Pending -> In Progress -> Completed)
2) How a reviewer's status change maps onto an Approval decision
3) Which chain effects follow each decision

Rules are data; services look them up instead of branching inline.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from app.core.errors import InvalidTransitionError, ValidationError
from app.db.models.action import ActionStatus
from app.db.models.approval import ApprovalStatus, ApprovalType


class Decision(str, enum.Enum):
    APPROVE = "approve"
    KEEP_FOR_MONITORING = "keep_for_monitoring"
    RECHECK = "recheck"


class ChainStage(int, enum.Enum):
    ORIGIN = 0
    REVIEW = 1
    FINAL = 2


# chain effects, executed by app.services.effects
ADVANCE_CHAIN = "advance_chain"
REVERT_ORIGIN = "revert_origin"
REOPEN_SITE = "reopen_site"


@dataclass(frozen=True, slots=True)
class Transition:
    """One edge of the action status machine."""

    from_status: ActionStatus
    to_status: ActionStatus


@dataclass(frozen=True, slots=True)
class ReviewRule:
    """What a reviewer's transition means for the approval and the chain."""

    stage: ChainStage
    to_status: ActionStatus
    decision: Decision
    approval_status: ApprovalStatus
    effects: tuple[str, ...] = ()


TRANSITIONS: tuple[Transition, ...] = (
    Transition(ActionStatus.PENDING, ActionStatus.IN_PROGRESS),
    Transition(ActionStatus.PENDING, ActionStatus.COMPLETED),
    Transition(ActionStatus.IN_PROGRESS, ActionStatus.COMPLETED),
)


REVIEW_RULES: tuple[ReviewRule, ...] = (
    # --- Stage 1: Equipment review ---
    ReviewRule(ChainStage.REVIEW, ActionStatus.COMPLETED, Decision.APPROVE, ApprovalStatus.APPROVED, (ADVANCE_CHAIN,)),
    ReviewRule(
        ChainStage.REVIEW,
        ActionStatus.IN_PROGRESS,
        Decision.KEEP_FOR_MONITORING,
        ApprovalStatus.KEPT_FOR_MONITORING,
        (REVERT_ORIGIN,),
    ),
    ReviewRule(ChainStage.REVIEW, ActionStatus.IN_PROGRESS, Decision.RECHECK, ApprovalStatus.RECHECK_REQUESTED, (REVERT_ORIGIN,)),
    # --- Stage 2: final sign-off ---
    ReviewRule(ChainStage.FINAL, ActionStatus.COMPLETED, Decision.APPROVE, ApprovalStatus.APPROVED),
    ReviewRule(ChainStage.FINAL, ActionStatus.IN_PROGRESS, Decision.KEEP_FOR_MONITORING, ApprovalStatus.KEPT_FOR_MONITORING),
    ReviewRule(
        ChainStage.FINAL,
        ActionStatus.IN_PROGRESS,
        Decision.RECHECK,
        ApprovalStatus.RECHECK_REQUESTED,
        (REVERT_ORIGIN, REOPEN_SITE),
    ),
)


STAGE_APPROVAL_TYPES: dict[ChainStage, ApprovalType] = {
    ChainStage.REVIEW: ApprovalType.AMC_RESOLUTION,
    ChainStage.FINAL: ApprovalType.CCR_RESOLUTION,
}

_KEEP_RE = re.compile(r"ke(?:pt|ep)\s+for\s+monitoring", re.IGNORECASE)


def get_transition(from_status: ActionStatus, to_status: ActionStatus) -> Transition:
    for t in TRANSITIONS:
        if t.from_status == from_status and t.to_status == to_status:
            return t
    if from_status == to_status:
        raise InvalidTransitionError(f"Action is already {from_status.value}")
    raise InvalidTransitionError(
        f"Cannot move action from {from_status.value} to {to_status.value}",
        from_status=from_status.value,
        to_status=to_status.value,
        allowed=[s.value for s in allowed_next(from_status)],
    )


def allowed_next(status: ActionStatus) -> list[ActionStatus]:
    return [t.to_status for t in TRANSITIONS if t.from_status == status]


def stage_of(issue_type: str | None) -> ChainStage:
    for stage, approval_type in STAGE_APPROVAL_TYPES.items():
        if issue_type == approval_type.value:
            return stage
    return ChainStage.ORIGIN


def approval_type_for(stage: ChainStage) -> ApprovalType:
    return STAGE_APPROVAL_TYPES[stage]


def legacy_decision(remarks: str | None) -> Decision:
    """Translate free-text remarks from older clients into a decision."""
    if remarks and _KEEP_RE.search(remarks):
        return Decision.KEEP_FOR_MONITORING
    return Decision.RECHECK


def resolve_decision(to_status: ActionStatus, decision: Decision | None, remarks: str | None) -> Decision:
    if to_status == ActionStatus.COMPLETED:
        if decision not in (None, Decision.APPROVE):
            raise ValidationError("Completing a review means approving it", decision=decision.value)
        return Decision.APPROVE
    if decision is None:
        return legacy_decision(remarks)
    if decision == Decision.APPROVE:
        raise ValidationError("Approving a review requires status Completed")
    return decision


def get_review_rule(stage: ChainStage, to_status: ActionStatus, decision: Decision) -> ReviewRule:
    for r in REVIEW_RULES:
        if r.stage == stage and r.to_status == to_status and r.decision == decision:
            return r
    raise InvalidTransitionError(
        f"No review rule for stage {stage.value} -> {to_status.value} ({decision.value})"
    )


def next_stage(stage: ChainStage, role: str, *, vendor_routed: bool, final_role: str) -> ChainStage | None:
    """Which review stage follows a completed action, if any."""
    if stage == ChainStage.ORIGIN:
        if role == final_role:
            return None
        # non vendor-routed teams skip the Equipment review entirely
        return ChainStage.REVIEW if vendor_routed else ChainStage.FINAL
    if stage == ChainStage.REVIEW:
        return ChainStage.FINAL
    return None
