"""ApprovalChain: the review state machine on top of actions.

Stage 0 is the team's own fault-resolution action. When it completes, a
vendor-routed team gets an Equipment review (stage 1) first; every other team
goes straight to final CCR sign-off (stage 2). All stage creation goes through
`advance_chain`, which is idempotent: `chain_key` makes a stage unique per
(origin, review cycle) and `open_key` keeps a single open approval per
(site, type). A racing duplicate hits one of the unique indexes and returns
the approval that won.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NoEligibleAssigneeError, NotFoundError
from app.core.rbac import can_view_approval, is_admin, is_final_reviewer, is_reviewer, require
from app.core.routing_policy import get_policy
from app.core.workflow import (
    ADVANCE_CHAIN,
    REOPEN_SITE,
    REVERT_ORIGIN,
    ChainStage,
    ReviewRule,
    approval_type_for,
    next_stage,
    stage_of,
)
from app.db.models.action import Action, ActionStatus
from app.db.models.approval import Approval, ApprovalStatus, ApprovalType, open_key_for
from app.db.models.user import User
from app.db.models.workflow_log import WorkflowLog
from app.db.session import commit
from app.services.effects import Effect
from app.services.routing import RoutingResolver
from app.services.visibility import link_final_approval
from app.utils.rows import normalize_site_code

logger = logging.getLogger("fault_routing.approvals")


def approval_for_action(db: Session, action_id: int) -> Approval | None:
    return (
        db.query(Approval)
        .filter(Approval.action_id == action_id)
        .order_by(Approval.id.desc())
        .first()
    )


def _by_chain_or_open_key(db: Session, chain_key: str, open_key: str) -> Approval | None:
    existing = db.query(Approval).filter(Approval.chain_key == chain_key).first()
    if existing is None:
        existing = db.query(Approval).filter(Approval.open_key == open_key).first()
    return existing


def _reviewer_for(db: Session, stage: ChainStage, origin: Action) -> User:
    policy = get_policy()
    resolver = RoutingResolver(db, policy)
    if stage == ChainStage.REVIEW:
        # prefer the Equipment user who routed the original ticket
        assigner = db.get(User, origin.assigned_by_id)
        if assigner is not None and assigner.is_eligible and assigner.role == policy.review_role:
            return assigner
        role = policy.review_role
    else:
        role = policy.final_review_role
    users = resolver.eligible_users(role)
    if not users:
        raise NoEligibleAssigneeError(role, site_code=origin.site_code)
    return users[0]


def _origin_of(db: Session, action: Action) -> Action:
    if action.chain_origin_id is None:
        return action
    return db.get(Action, action.chain_origin_id) or action


def _advance(db: Session, action_id: int) -> tuple[Approval | None, bool]:
    action = db.get(Action, action_id)
    if action is None:
        raise NotFoundError(f"Action {action_id} not found", action_id=action_id)

    policy = get_policy()
    stage = stage_of(action.issue_type)
    if stage == ChainStage.ORIGIN:
        if action.status != ActionStatus.COMPLETED:
            return None, False
        origin = action
    else:
        current = approval_for_action(db, action.id)
        if current is None or current.status != ApprovalStatus.APPROVED:
            return None, False
        origin = _origin_of(db, action)

    nxt = next_stage(
        stage,
        action.assigned_to_role,
        vendor_routed=policy.is_vendor_routed(origin.assigned_to_role),
        final_role=policy.final_review_role,
    )
    if nxt is None:
        return None, False

    approval_type = approval_type_for(nxt)
    chain_key = f"{origin.id}:{origin.review_cycle}:{nxt.value}"
    open_key = open_key_for(origin.site_code, approval_type, origin.id)
    existing = _by_chain_or_open_key(db, chain_key, open_key)
    if existing is not None:
        logger.info("advance_chain(%s): stage %s already open as approval %s", action_id, nxt.value, existing.id)
        return existing, False

    reviewer = _reviewer_for(db, nxt, origin)
    site = origin.site_code or ""
    review = Action(
        row_data=dict(origin.row_data or {}),
        headers=list(origin.headers or []),
        row_key=origin.row_key,
        site_code=origin.site_code,
        routing_team=policy.team_for_role(reviewer.role),
        issue_type=approval_type.value,
        assigned_to_id=reviewer.id,
        assigned_to_role=reviewer.role,
        assigned_to_division=origin.assigned_to_division,
        assigned_to_vendor=reviewer.vendor,
        assigned_by_id=action.assigned_to_id,
        assigned_by_role=action.assigned_to_role,
        source_file_id=origin.source_file_id,
        original_row_index=origin.original_row_index,
        status=ActionStatus.PENDING,
        priority=origin.priority,
        remarks=f"{approval_type.value} for site {site}".strip(),
        photos=list(action.photos or []),
        chain_origin_id=origin.id,
        parent_action_id=action.id,
    )
    db.add(review)
    db.flush()

    approval = Approval(
        action_id=review.id,
        site_code=origin.site_code,
        approval_type=approval_type,
        status=ApprovalStatus.PENDING,
        submitted_by_id=action.assigned_to_id,
        submitted_by_role=action.assigned_to_role,
        assigned_to_id=reviewer.id,
        assigned_to_role=reviewer.role,
        submission_remarks=action.remarks or "",
        photos=list(action.photos or []),
        file_id=origin.source_file_id,
        row_key=origin.row_key,
        original_row_data=dict(origin.row_data or {}),
        meta={
            "origin_action_id": origin.id,
            "prior_action_id": action.id,
            "stage": nxt.value,
            "review_cycle": origin.review_cycle,
        },
        origin_action_id=origin.id,
        prior_action_id=action.id,
        open_key=open_key,
        chain_key=chain_key,
    )
    db.add(approval)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = _by_chain_or_open_key(db, chain_key, open_key)
        if existing is None:
            raise
        logger.info("advance_chain(%s): lost creation race to approval %s", action_id, existing.id)
        return existing, False

    db.add(WorkflowLog(action_id=review.id, actor_id=None, event="chain_open", to_status=ActionStatus.PENDING.value,
                       comment=f"Opened from action {action.id}"))
    if nxt == ChainStage.FINAL:
        link_final_approval(db, approval)
    logger.info(
        "advance_chain(%s): opened stage %s action=%s approval=%s reviewer=%s site=%s",
        action_id, nxt.value, review.id, approval.id, reviewer.username, site or "-",
    )
    return approval, True


def advance_chain(db: Session, action_id: int) -> Approval | None:
    """Open the next review stage after `action_id`, or return the one already open.

    Caller commits.
    """
    approval, _ = _advance(db, action_id)
    return approval


def advance_chain_effect(db: Session, action_id: int) -> list[Effect]:
    approval, created = _advance(db, action_id)
    if approval is None or not created:
        return []
    site = approval.site_code or "-"
    return [
        Effect(
            "notify",
            {
                "user_id": approval.assigned_to_id,
                "title": approval.approval_type.value,
                "message": f"Site {site} is waiting for your review",
                "link": f"/approvals/{approval.id}",
                "metadata": {"approval_id": approval.id, "action_id": approval.action_id, "site_code": approval.site_code},
                "category": "approval",
            },
        ),
        Effect(
            "email",
            {
                "user_id": approval.assigned_to_id,
                "template": "approval_requested",
                "data": {"approval_id": approval.id, "site_code": approval.site_code, "type": approval.approval_type.value},
            },
        ),
    ]


def open_review_effect(db: Session, action_id: int) -> None:
    """Attach the Pending approval to a review action submitted directly."""
    action = db.get(Action, action_id)
    if action is None:
        raise NotFoundError(f"Action {action_id} not found", action_id=action_id)
    stage = stage_of(action.issue_type)
    if stage == ChainStage.ORIGIN or approval_for_action(db, action.id) is not None:
        return
    approval_type = approval_type_for(stage)
    chain_key = f"{action.id}:{action.review_cycle}:{stage.value}"
    open_key = open_key_for(action.site_code, approval_type, action.id)
    existing = _by_chain_or_open_key(db, chain_key, open_key)
    if existing is not None:
        logger.info("Review action %s: site already has open approval %s", action.id, existing.id)
        return
    approval = Approval(
        action_id=action.id,
        site_code=action.site_code,
        approval_type=approval_type,
        status=ApprovalStatus.PENDING,
        submitted_by_id=action.assigned_by_id,
        submitted_by_role=action.assigned_by_role,
        assigned_to_id=action.assigned_to_id,
        assigned_to_role=action.assigned_to_role,
        submission_remarks=action.remarks or "",
        photos=list(action.photos or []),
        file_id=action.source_file_id,
        row_key=action.row_key,
        original_row_data=dict(action.row_data or {}),
        meta={"origin_action_id": action.id, "stage": stage.value},
        origin_action_id=action.id,
        open_key=open_key,
        chain_key=chain_key,
    )
    db.add(approval)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("Review action %s: approval created concurrently", action.id)
        return
    if stage == ChainStage.FINAL:
        link_final_approval(db, approval)


def revert_origin(db: Session, origin_action_id: int, reason: str = "") -> list[Effect]:
    """Send the stage-0 action back to In Progress after a reviewer pushback."""
    origin = db.get(Action, origin_action_id)
    if origin is None:
        logger.info("revert_origin(%s): origin action no longer exists", origin_action_id)
        return []
    if origin.status != ActionStatus.COMPLETED:
        return []
    origin.status = ActionStatus.IN_PROGRESS
    origin.completed_at = None
    origin.review_cycle = (origin.review_cycle or 0) + 1
    db.add(WorkflowLog(
        action_id=origin.id,
        actor_id=None,
        event="chain_revert",
        from_status=ActionStatus.COMPLETED.value,
        to_status=ActionStatus.IN_PROGRESS.value,
        comment=reason,
    ))
    db.flush()
    site = origin.site_code or "-"
    return [
        Effect(
            "notify",
            {
                "user_id": origin.assigned_to_id,
                "title": "Resolution sent back",
                "message": f"Site {site}: {reason}" if reason else f"Site {site} was sent back for rework",
                "link": f"/actions/{origin.id}",
                "metadata": {"action_id": origin.id, "site_code": origin.site_code},
            },
        )
    ]


# ---- decisions (called from ActionStore.update_status) ----


def record_decision(approval: Approval, rule: ReviewRule, actor: User, remarks: str | None) -> None:
    """Apply a reviewer decision to a Pending approval. Caller commits."""
    if approval.status != ApprovalStatus.PENDING:
        raise ConflictError(
            f"Approval already decided ({approval.status.value})",
            approval_id=approval.id,
            status=approval.status.value,
        )
    approval.status = rule.approval_status
    approval.approved_by_id = actor.id
    approval.approved_by_role = actor.role
    approval.approved_at = datetime.utcnow()
    approval.approval_remarks = remarks or ""
    approval.open_key = None


def chain_effects(action: Action, approval: Approval, rule: ReviewRule, remarks: str | None) -> list[Effect]:
    origin_id = approval.origin_action_id or action.chain_origin_id
    effects: list[Effect] = []
    for kind in rule.effects:
        if kind == ADVANCE_CHAIN:
            effects.append(Effect("advance_chain", {"action_id": action.id}))
        elif kind == REVERT_ORIGIN and origin_id is not None and origin_id != action.id:
            reason = f"{approval.approval_type.value}: {rule.approval_status.value}"
            if remarks:
                reason = f"{reason} ({remarks})"
            effects.append(Effect("revert_origin", {"origin_action_id": origin_id, "reason": reason}))
        elif kind == REOPEN_SITE and approval.file_id and approval.site_code:
            effects.append(Effect("reopen_site", {"file_id": approval.file_id, "site_code": approval.site_code}))
    if approval.submitted_by_id != approval.approved_by_id:
        effects.append(
            Effect(
                "notify",
                {
                    "user_id": approval.submitted_by_id,
                    "title": f"{approval.approval_type.value}: {approval.status.value}",
                    "message": f"Site {approval.site_code or '-'} review result: {approval.status.value}",
                    "link": f"/approvals/{approval.id}",
                    "metadata": {"approval_id": approval.id, "status": approval.status.value},
                    "category": "approval",
                },
            )
        )
    return effects


# ---- queries ----


def visible_approvals(db: Session, user: User):
    """Equipment sees its stage-1 queue, CCR sees every final review, others their own."""
    q = db.query(Approval)
    if is_admin(user):
        return q
    if is_final_reviewer(user):
        return q.filter(Approval.approval_type == ApprovalType.CCR_RESOLUTION)
    if is_reviewer(user):
        return q.filter(Approval.approval_type == ApprovalType.AMC_RESOLUTION, Approval.assigned_to_id == user.id)
    return q.filter(Approval.assigned_to_id == user.id)


def list_approvals(
    db: Session,
    user: User,
    status: ApprovalStatus | None = None,
    approval_type: ApprovalType | None = None,
    site_code: str | None = None,
    limit: int = 200,
) -> list[Approval]:
    q = visible_approvals(db, user)
    if status is not None:
        q = q.filter(Approval.status == status)
    if approval_type is not None:
        q = q.filter(Approval.approval_type == approval_type)
    if site_code:
        q = q.filter(Approval.site_code == normalize_site_code(site_code))
    return q.order_by(Approval.created_at.desc(), Approval.id.desc()).limit(limit).all()


def get_approval(db: Session, user: User, approval_id: int) -> Approval:
    approval = db.get(Approval, approval_id)
    require(approval is not None, f"Approval {approval_id} not found", 404)
    require(can_view_approval(user, approval), "Not allowed to view this approval")
    return approval


def approval_stats(db: Session, user: User) -> dict:
    rows = (
        visible_approvals(db, user)
        .with_entities(Approval.status, func.count(Approval.id))
        .group_by(Approval.status)
        .all()
    )
    counts = {status: n for status, n in rows}
    stats = {
        "pending": counts.get(ApprovalStatus.PENDING, 0),
        "approved": counts.get(ApprovalStatus.APPROVED, 0),
        "kept_for_monitoring": counts.get(ApprovalStatus.KEPT_FOR_MONITORING, 0),
        "recheck_requested": counts.get(ApprovalStatus.RECHECK_REQUESTED, 0),
    }
    stats["total"] = sum(stats.values())
    return stats


def reset_approvals(
    db: Session,
    actor: User,
    approved_on: date,
    site_code: str,
    roles: list[str] | None = None,
) -> int:
    """Admin repair: reopen decisions made on one day for one site."""
    require(is_admin(actor), "Only admins can reset approvals")
    code = normalize_site_code(site_code)
    require(bool(code), "site_code is required", 400)
    start = datetime.combine(approved_on, time.min)
    q = db.query(Approval).filter(
        Approval.site_code == code,
        Approval.status.in_([ApprovalStatus.APPROVED, ApprovalStatus.KEPT_FOR_MONITORING]),
        Approval.approved_at >= start,
        Approval.approved_at < start + timedelta(days=1),
    )
    if roles:
        q = q.filter(Approval.approved_by_role.in_(roles))
    approvals = q.all()
    for ap in approvals:
        ap.status = ApprovalStatus.PENDING
        ap.approved_by_id = None
        ap.approved_by_role = None
        ap.approved_at = None
        ap.approval_remarks = ""
        ap.open_key = open_key_for(ap.site_code, ap.approval_type, ap.origin_action_id or ap.action_id)
        action = db.get(Action, ap.action_id)
        if action is not None and action.status != ActionStatus.PENDING:
            db.add(WorkflowLog(
                action_id=action.id,
                actor_id=actor.id,
                event="approval_reset",
                from_status=action.status.value,
                to_status=ActionStatus.PENDING.value,
                comment=f"Approval {ap.id} reset",
            ))
            action.status = ActionStatus.PENDING
            action.completed_at = None
    try:
        commit(db)
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Another approval for this site is already pending", site_code=code) from exc
    logger.info("reset_approvals: %d approvals reopened for site %s by %s", len(approvals), code, actor.username)
    return len(approvals)
