"""OwnershipTransferManager: per-holder site records.

First routing of a row leaves two records under the same (file, base key):
A, held by the user who routed it, and B (`<base>-routed-<user>-<ms>`), held
by the assignee. Later reroutes move B's owner in place; `original_owner_id`
is written once at creation and never again.

Resolving a routed (or rerouted) record is a second way into the approval
chain: it finds the underlying stage-0 action and, when the resolver could
have completed that action themselves, completes it and calls the same
`advance_chain` as a status update would. The router's own record A never
completes anything.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.rbac import can_act_on, can_view_site_record, is_admin, is_final_reviewer, require
from app.core.routing_policy import get_policy
from app.core.workflow import STAGE_APPROVAL_TYPES
from app.db.models.action import Action, ActionStatus
from app.db.models.site_record import Observation, SiteRecord
from app.db.models.user import User
from app.db.models.workflow_log import WorkflowLog
from app.db.session import commit
from app.services.effects import Effect, run_effects
from app.services.visibility import active_site_records
from app.utils.observation import parse_observation
from app.utils.rows import (
    ROUTED_MARKER,
    base_row_key,
    extract_circle,
    extract_division,
    is_routed_key,
    routed_row_key,
)

logger = logging.getLogger("fault_routing.ownership")

_REVIEW_ISSUE_TYPES = [t.value for t in STAGE_APPROVAL_TYPES.values()]


def get_record(db: Session, file_id: str, row_key: str) -> SiteRecord | None:
    return (
        db.query(SiteRecord)
        .filter(SiteRecord.file_id == file_id, SiteRecord.row_key == row_key)
        .first()
    )


def _open_routed_record(db: Session, file_id: str, base_key: str) -> SiteRecord | None:
    return (
        db.query(SiteRecord)
        .filter(
            SiteRecord.file_id == file_id,
            SiteRecord.row_key.startswith(base_key + ROUTED_MARKER, autoescape=True),
            SiteRecord.observation == Observation.PENDING,
        )
        .order_by(SiteRecord.id.desc())
        .first()
    )


def assign_site_records(
    db: Session, action: Action, task_status: str | None = None
) -> tuple[SiteRecord, SiteRecord] | None:
    """Create the A/B pair on first routing, or hand B to the new assignee. Caller commits."""
    if not action.row_key or not action.site_code:
        return None
    policy = get_policy()
    base = base_row_key(action.row_key)
    file_id = action.source_file_id
    row = dict(action.row_data or {})

    original = get_record(db, file_id, base)
    if original is None:
        original = SiteRecord(
            file_id=file_id,
            row_key=base,
            site_code=action.site_code,
            owner_id=action.assigned_by_id,
            original_owner_id=action.assigned_by_id,
            observation=Observation.PENDING,
            task_status=task_status or f"Routed to {action.routing_team}",
            issue_type=action.issue_type,
            remarks=action.remarks or "",
            saved_from="routing",
            circle=extract_circle(row, policy) or None,
            division=extract_division(row, policy) or None,
            row_data=row,
        )
        db.add(original)
        db.flush()

    routed = _open_routed_record(db, file_id, base)
    if routed is not None:
        if routed.owner_id != action.assigned_to_id:
            logger.info(
                "Site %s (%s): holder %s -> %s", routed.site_code, routed.row_key, routed.owner_id, action.assigned_to_id
            )
            routed.owner_id = action.assigned_to_id
        routed.task_status = f"Pending at {action.routing_team}"
        routed.remarks = action.remarks or ""
        routed.saved_from = "reroute"
    else:
        assignee = db.get(User, action.assigned_to_id)
        handle = assignee.username if assignee is not None else str(action.assigned_to_id)
        routed = SiteRecord(
            file_id=file_id,
            row_key=routed_row_key(base, handle, int(time.time() * 1000)),
            site_code=action.site_code,
            owner_id=action.assigned_to_id,
            original_owner_id=original.original_owner_id,
            observation=Observation.PENDING,
            task_status=f"Pending at {action.routing_team}",
            issue_type=action.issue_type,
            remarks=action.remarks or "",
            saved_from="routing",
            circle=original.circle,
            division=original.division,
            row_data=row,
            ccr_approval_id=original.ccr_approval_id,
        )
        db.add(routed)
    db.flush()
    return original, routed


def assign_site_records_effect(db: Session, action_id: int, task_status: str | None = None) -> None:
    action = db.get(Action, action_id)
    if action is None:
        logger.info("assign_site_records(%s): action no longer exists", action_id)
        return
    assign_site_records(db, action, task_status)


def find_origin_action(db: Session, record: SiteRecord) -> Action | None:
    """Stage-0 action behind a record: exact key, then site+holder, site+role, site."""
    base_q = (
        db.query(Action)
        .filter(Action.source_file_id == record.file_id, Action.issue_type.notin_(_REVIEW_ISSUE_TYPES))
        .order_by(Action.created_at.desc(), Action.id.desc())
    )
    owner = db.get(User, record.owner_id)
    attempts = [
        ("row_key", base_q.filter(Action.row_key.in_(list({record.row_key, base_row_key(record.row_key)})))),
        ("site+assignee", base_q.filter(Action.site_code == record.site_code, Action.assigned_to_id == record.owner_id)),
    ]
    if owner is not None:
        attempts.append(
            ("site+role", base_q.filter(Action.site_code == record.site_code, Action.assigned_to_role == owner.role))
        )
    attempts.append(("site", base_q.filter(Action.site_code == record.site_code)))

    for how, q in attempts:
        action = q.first()
        if action is not None:
            logger.info("Site record %s matched action %s by %s", record.id, action.id, how)
            return action
    return None


def complete_origin(db: Session, file_id: str, row_key: str, actor_id: int | None = None) -> list[Effect]:
    record = get_record(db, file_id, row_key)
    require(record is not None, f"Site record {file_id}/{row_key} not found", 404)
    action = find_origin_action(db, record)
    if action is None:
        logger.info("Site record %s resolved with no matching action", record.id)
        return []
    actor = db.get(User, actor_id) if actor_id is not None else None
    if actor is None or not can_act_on(actor, action):
        logger.warning(
            "Site record %s resolved by user %s, who cannot act on action %s; chain not advanced",
            record.id, actor_id, action.id,
        )
        return []
    if action.status != ActionStatus.COMPLETED:
        db.add(WorkflowLog(
            action_id=action.id,
            actor_id=actor_id,
            event="resolved_via_site",
            from_status=action.status.value,
            to_status=ActionStatus.COMPLETED.value,
            comment=f"Site record {record.id} resolved",
        ))
        action.status = ActionStatus.COMPLETED
        action.completed_at = datetime.utcnow()
        db.flush()
    return [Effect("advance_chain", {"action_id": action.id})]


def reopen_site(db: Session, file_id: str, site_code: str) -> None:
    """Final reviewer asked for a recheck: the site's observations go back to Pending."""
    records = (
        db.query(SiteRecord)
        .filter(
            SiteRecord.file_id == file_id,
            SiteRecord.site_code == site_code,
            SiteRecord.observation == Observation.RESOLVED,
        )
        .all()
    )
    for rec in records:
        rec.observation = Observation.PENDING
        rec.task_status = "Recheck requested"
    db.flush()


def resolve_site_observation(
    db: Session,
    actor: User,
    file_id: str,
    row_key: str,
    observation: str | None,
    remarks: str | None = None,
    task_status: str | None = None,
) -> SiteRecord:
    record = get_record(db, file_id, row_key)
    require(record is not None, f"Site record {file_id}/{row_key} not found", 404)
    require(record.owner_id == actor.id, "Only the current holder can update this site record")
    obs = parse_observation(observation)
    # only a handed-over record stands in for the assignee finishing the ticket
    transferred = is_routed_key(record.row_key) or record.saved_from == "reroute"

    record.observation = obs
    if remarks is not None:
        record.remarks = remarks
    if task_status is not None:
        record.task_status = task_status
    record.saved_from = "observation"
    commit(db)

    if obs == Observation.RESOLVED and transferred:
        run_effects(db, [Effect("complete_origin", {"file_id": file_id, "row_key": row_key, "actor_id": actor.id})])
    db.refresh(record)
    return record


def list_site_records(
    db: Session,
    user: User,
    scope: str = "owner",
    include_approved: bool = False,
    file_id: str | None = None,
    site_code: str | None = None,
) -> list[SiteRecord]:
    if scope == "original":
        return active_site_records(
            db, original_owner_id=user.id, file_id=file_id, site_code=site_code, include_approved=include_approved
        )
    if scope == "all":
        require(is_admin(user) or is_final_reviewer(user), "Not allowed to list every site record")
        return active_site_records(db, file_id=file_id, site_code=site_code, include_approved=include_approved)
    return active_site_records(
        db, owner_id=user.id, file_id=file_id, site_code=site_code, include_approved=include_approved
    )


def get_site_record(db: Session, user: User, record_id: int) -> SiteRecord:
    record = db.get(SiteRecord, record_id)
    require(record is not None, f"Site record {record_id} not found", 404)
    require(can_view_site_record(user, record), "Not allowed to view this site record")
    return record
