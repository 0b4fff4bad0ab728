"""ActionStore: creation, status machine, reroute and delete for actions.

Every public operation commits its primary write first and only then runs
secondary effects (see `app.services.effects`), so a failing notification or
chain step can never undo or hide the write the caller asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.errors import InvalidTransitionError, ValidationError
from app.core.rbac import can_act_on, can_delete, can_view_action, is_admin, is_final_reviewer, require
from app.core.routing_policy import get_policy
from app.core.workflow import (
    ChainStage,
    Decision,
    get_review_rule,
    get_transition,
    resolve_decision,
    stage_of,
)
from app.db.models.action import Action, ActionStatus, Priority
from app.db.models.user import User, UserStatus
from app.db.models.workflow_log import WorkflowLog
from app.db.session import commit
from app.services import approvals
from app.services.effects import Effect, run_effects
from app.services.routing import RoutingResolver
from app.utils.rows import extract_site_code

logger = logging.getLogger("fault_routing.actions")


@dataclass
class RoutingRequest:
    row_data: dict
    routing: str
    issue_type: str
    source_file_id: str
    headers: list[str] = field(default_factory=list)
    row_key: str | None = None
    remarks: str = ""
    priority: Priority = Priority.MEDIUM
    photos: list[str] = field(default_factory=list)
    original_row_index: int | None = None
    task_status: str | None = None


def _log(db: Session, action: Action, actor: User | None, event: str, from_status: str, to_status: str, comment: str = "") -> None:
    db.add(WorkflowLog(
        action_id=action.id,
        actor_id=actor.id if actor else None,
        event=event,
        from_status=from_status,
        to_status=to_status,
        comment=comment or "",
    ))


def _assignment_effects(action: Action, title: str, message: str, template: str) -> list[Effect]:
    return [
        Effect(
            "notify",
            {
                "user_id": action.assigned_to_id,
                "title": title,
                "message": message,
                "link": f"/actions/{action.id}",
                "metadata": {"action_id": action.id, "site_code": action.site_code, "routing": action.routing_team},
            },
        ),
        Effect(
            "email",
            {
                "user_id": action.assigned_to_id,
                "template": template,
                "data": {
                    "action_id": action.id,
                    "site_code": action.site_code,
                    "routing": action.routing_team,
                    "issue_type": action.issue_type,
                    "priority": action.priority.value,
                    "remarks": action.remarks,
                },
            },
        ),
    ]


def get_action(db: Session, action_id: int) -> Action:
    action = db.get(Action, action_id)
    require(action is not None, f"Action {action_id} not found", 404)
    return action


# ---- create ----


def _validate(req: RoutingRequest) -> None:
    missing = [
        name
        for name, value in (
            ("rowData", req.row_data),
            ("routing", (req.routing or "").strip()),
            ("typeOfIssue", (req.issue_type or "").strip()),
            ("sourceFileId", (req.source_file_id or "").strip()),
        )
        if not value
    ]
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(missing), fields=missing)


def create_action(db: Session, actor: User, req: RoutingRequest) -> Action:
    """Resolve the assignee and persist a Pending action (submitRouting)."""
    _validate(req)
    require(actor.is_eligible, "Only active, approved users can route tickets")

    policy = get_policy()
    res = RoutingResolver(db, policy).resolve(req.routing, req.row_data, actor)

    action = Action(
        row_data=dict(req.row_data),
        headers=list(req.headers or req.row_data.keys()),
        row_key=req.row_key or None,
        site_code=extract_site_code(req.row_data, policy) or None,
        routing_team=req.routing.strip(),
        issue_type=req.issue_type.strip(),
        assigned_to_id=res.user.id,
        assigned_to_role=res.role,
        assigned_to_division=res.scope,
        assigned_to_vendor=res.vendor,
        assigned_by_id=actor.id,
        assigned_by_role=actor.role,
        source_file_id=req.source_file_id.strip(),
        original_row_index=req.original_row_index,
        status=ActionStatus.PENDING,
        priority=req.priority,
        remarks=req.remarks or "",
        photos=list(req.photos or []),
        assigned_at=datetime.utcnow(),
    )
    db.add(action)
    db.flush()
    _log(db, action, actor, "create", "", ActionStatus.PENDING.value, f"Routed to {res.user.username} via {res.strategy}")
    commit(db)

    effects = [Effect("assign_site_records", {"action_id": action.id, "task_status": req.task_status})]
    if stage_of(action.issue_type) != ChainStage.ORIGIN:
        effects.append(Effect("open_review", {"action_id": action.id}))
    effects += _assignment_effects(
        action,
        "New action assigned",
        f"{action.issue_type} at site {action.site_code or '-'} routed to you by {actor.display_name}",
        "action_assigned",
    )
    run_effects(db, effects)
    db.refresh(action)
    return action


# ---- status machine ----


def update_status(
    db: Session,
    actor: User,
    action_id: int,
    new_status: ActionStatus,
    remarks: str | None = None,
    decision: Decision | None = None,
) -> Action:
    """updateActionStatus. Review actions record their approval decision atomically."""
    action = get_action(db, action_id)
    require(can_act_on(actor, action), "Only the assignee can update this action")
    old_status = action.status
    get_transition(old_status, new_status)

    effects: list[Effect] = []
    stage = stage_of(action.issue_type)
    if stage == ChainStage.ORIGIN:
        if decision is not None:
            raise ValidationError("Decisions apply to review actions only", decision=decision.value)
        if new_status == ActionStatus.COMPLETED:
            effects.append(Effect("advance_chain", {"action_id": action.id}))
    else:
        approval = approvals.approval_for_action(db, action.id)
        if approval is None:
            raise InvalidTransitionError("Review action has no approval attached", action_id=action.id)
        rule = get_review_rule(stage, new_status, resolve_decision(new_status, decision, remarks))
        approvals.record_decision(approval, rule, actor, remarks)
        effects += approvals.chain_effects(action, approval, rule, remarks)

    action.status = new_status
    action.completed_at = datetime.utcnow() if new_status == ActionStatus.COMPLETED else None
    if remarks:
        action.remarks = f"{action.remarks}\n\n{remarks}" if action.remarks else remarks
    _log(db, action, actor, "status", old_status.value, new_status.value, remarks or "")
    commit(db)
    logger.info("Action %s: %s -> %s by %s", action.id, old_status.value, new_status.value, actor.username)

    run_effects(db, effects)
    db.refresh(action)
    return action


# ---- reroute ----


def reroute_action(
    db: Session,
    actor: User,
    action_id: int,
    target_user_id: int,
    target_role: str,
    remarks: str | None = None,
    photos: list[str] | None = None,
) -> Action:
    action = get_action(db, action_id)
    require(can_act_on(actor, action), "Only the assignee can reroute this action")
    if action.status == ActionStatus.COMPLETED:
        raise InvalidTransitionError("Completed actions cannot be rerouted", action_id=action.id)

    target = db.get(User, target_user_id)
    require(target is not None, f"User {target_user_id} not found", 404)
    require(
        target.is_active and target.status == UserStatus.APPROVED.value,
        "Target user is not active and approved",
        400,
    )
    require(target.role == target_role, f"Target user does not hold role {target_role}", 400)

    policy = get_policy()
    old_status = action.status
    previous = db.get(User, action.assigned_to_id)

    action.assigned_to_id = target.id
    action.assigned_to_role = target.role
    action.assigned_to_vendor = target.vendor
    if target.divisions:
        action.assigned_to_division = str(target.divisions[0])
    action.assigned_by_id = actor.id
    action.assigned_by_role = actor.role
    action.routing_team = policy.team_for_role(target.role)
    action.status = ActionStatus.PENDING
    action.completed_at = None
    action.assigned_at = datetime.utcnow()
    if remarks:
        note = f"[Rerouted] {remarks}"
        action.remarks = f"{action.remarks}\n\n{note}" if action.remarks else note
    if photos:
        action.photos = list(action.photos or []) + list(photos)

    approval = approvals.approval_for_action(db, action.id)
    if approval is not None and approval.is_open:
        approval.assigned_to_id = target.id
        approval.assigned_to_role = target.role

    _log(
        db, action, actor, "reroute", old_status.value, ActionStatus.PENDING.value,
        f"{previous.username if previous else '-'} -> {target.username}: {remarks or ''}".strip(),
    )
    commit(db)
    logger.info("Action %s rerouted to %s by %s", action.id, target.username, actor.username)

    effects = [Effect("assign_site_records", {"action_id": action.id})]
    effects += _assignment_effects(
        action,
        "Action rerouted to you",
        f"{action.issue_type} at site {action.site_code or '-'} rerouted to you by {actor.display_name}",
        "action_rerouted",
    )
    run_effects(db, effects)
    db.refresh(action)
    return action


# ---- delete ----


def delete_action(db: Session, actor: User, action_id: int) -> None:
    """Hard delete. The approval (if any) is kept, no longer open for its site."""
    action = get_action(db, action_id)
    require(can_delete(actor, action), "Only the assignee can delete this action")
    approval = approvals.approval_for_action(db, action.id)
    if approval is not None and approval.open_key is not None:
        # the approval stays as audit trail but gives up the site's open slot
        approval.open_key = None
    _log(db, action, actor, "delete", action.status.value, "", "")
    db.delete(action)
    commit(db)
    logger.info("Action %s deleted by %s", action_id, actor.username)


# ---- queries ----


def list_my_actions(
    db: Session,
    user: User,
    status: ActionStatus | None = None,
    priority: Priority | None = None,
    search: str | None = None,
    limit: int = 500,
) -> list[Action]:
    q = db.query(Action)
    if get_policy().is_role_scoped(user.role):
        q = q.filter(or_(Action.assigned_to_id == user.id, Action.assigned_to_role == user.role))
    else:
        q = q.filter(Action.assigned_to_id == user.id)
    if status is not None:
        q = q.filter(Action.status == status)
    if priority is not None:
        q = q.filter(Action.priority == priority)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Action.site_code.ilike(like),
                Action.routing_team.ilike(like),
                Action.issue_type.ilike(like),
                Action.remarks.ilike(like),
            )
        )
    return q.order_by(Action.created_at.desc(), Action.id.desc()).limit(limit).all()


def list_routed_actions(db: Session, user: User, limit: int = 500) -> list[Action]:
    return (
        db.query(Action)
        .filter(Action.assigned_by_id == user.id)
        .order_by(Action.created_at.desc(), Action.id.desc())
        .limit(limit)
        .all()
    )


def list_all_actions(db: Session, user: User, status: ActionStatus | None = None, limit: int = 1000) -> list[Action]:
    require(is_final_reviewer(user) or is_admin(user), "Only final reviewers can list every action")
    q = db.query(Action)
    if status is not None:
        q = q.filter(Action.status == status)
    return q.order_by(Action.created_at.desc(), Action.id.desc()).limit(limit).all()


def get_visible_action(db: Session, user: User, action_id: int) -> Action:
    action = get_action(db, action_id)
    require(can_view_action(user, action), "Not allowed to view this action")
    return action


def action_history(db: Session, user: User, action_id: int) -> list[WorkflowLog]:
    get_visible_action(db, user, action_id)
    return (
        db.query(WorkflowLog)
        .filter(WorkflowLog.action_id == action_id)
        .order_by(WorkflowLog.id)
        .all()
    )
