from __future__ import annotations

import pytest

from app.core.errors import AuthorizationError, InvalidTransitionError, NoEligibleAssigneeError, ValidationError
from app.db.models.action import Action, ActionStatus
from app.db.models.approval import Approval, ApprovalStatus
from app.db.models.notification import Notification
from app.db.models.workflow_log import WorkflowLog
from app.services.actions import (
    action_history,
    delete_action,
    list_all_actions,
    list_my_actions,
    list_routed_actions,
    reroute_action,
    update_status,
)

AMC_ROW = {"Site Code": "4A1001", "CIRCLE": "SOUTH"}


def test_create_action_snapshot_and_log(db, directory, route, mailer):
    action = route(directory.router_eq, "AMC Team", AMC_ROW, remarks="tower light off")

    assert action.status == ActionStatus.PENDING
    assert action.site_code == "4A1001"
    assert action.routing_team == "AMC Team"
    assert action.assigned_to_role == "AMC"
    assert action.assigned_to_division == "SOUTH"
    assert action.assigned_by_id == directory.router_eq.id
    assert action.headers == ["Site Code", "CIRCLE"]

    [log] = db.query(WorkflowLog).filter(WorkflowLog.action_id == action.id).all()
    assert log.event == "create"
    assert "circle" in log.comment

    note = db.query(Notification).filter(Notification.user_id == directory.amc_south.id).one()
    assert note.meta["action_id"] == action.id
    assert [(to, template) for to, template, _ in mailer.sent] == [("amc_south", "action_assigned")]
    assert mailer.sent[0][2]["remarks"] == "tower light off"


def test_missing_fields_rejected(db, directory, route):
    with pytest.raises(ValidationError) as exc:
        route(directory.router_eq, " ", AMC_ROW, issue_type="", file_id="")
    assert set(exc.value.context["fields"]) == {"routing", "typeOfIssue", "sourceFileId"}
    assert db.query(Action).count() == 0


def test_no_eligible_assignee_creates_nothing(db, directory, route, mailer):
    with pytest.raises(NoEligibleAssigneeError):
        route(directory.router_eq, "Relay Team", {"Site Code": "5B2001", "DIVISION": "HSR"})

    assert db.query(Action).count() == 0
    assert db.query(Notification).count() == 0
    assert mailer.sent == []


def test_ineligible_router_cannot_submit(db, directory, route):
    with pytest.raises(AuthorizationError):
        route(directory.pending_om, "AMC Team", AMC_ROW)


def test_non_assignee_cannot_update(db, directory, route):
    action = route(directory.router_eq, "AMC Team", AMC_ROW)
    logs_before = db.query(WorkflowLog).count()

    with pytest.raises(AuthorizationError):
        update_status(db, directory.amc_north, action.id, ActionStatus.COMPLETED, remarks="done")

    db.rollback()
    db.refresh(action)
    assert action.status == ActionStatus.PENDING
    assert action.remarks == ""
    assert db.query(WorkflowLog).count() == logs_before
    assert db.query(Approval).count() == 0


def test_status_machine(db, directory, route):
    action = route(directory.router_eq, "O&M Team", {"Site Code": "5B2000", "DIVISION": "HSR"})

    update_status(db, directory.om_hsr, action.id, ActionStatus.IN_PROGRESS, remarks="on site")
    done = update_status(db, directory.om_hsr, action.id, ActionStatus.COMPLETED)
    assert done.completed_at is not None

    with pytest.raises(InvalidTransitionError):
        update_status(db, directory.om_hsr, action.id, ActionStatus.IN_PROGRESS)

    events = [(log.event, log.to_status) for log in action_history(db, directory.router_eq, action.id)]
    assert events == [("create", "Pending"), ("status", "In Progress"), ("status", "Completed")]


def test_reroute_appends_and_resets(db, directory, route):
    action = route(directory.router_eq, "AMC Team", AMC_ROW, remarks="first visit", photos=["a.jpg"])
    update_status(db, directory.amc_south, action.id, ActionStatus.IN_PROGRESS)

    moved = reroute_action(
        db, directory.amc_south, action.id, directory.amc_north.id, "AMC", remarks="wrong circle", photos=["b.jpg"]
    )

    assert moved.assigned_to_id == directory.amc_north.id
    assert moved.assigned_by_id == directory.amc_south.id
    assert moved.status == ActionStatus.PENDING
    assert moved.remarks == "first visit\n\n[Rerouted] wrong circle"
    assert moved.photos == ["a.jpg", "b.jpg"]
    assert moved.routing_team == "AMC Team"

    with pytest.raises(AuthorizationError):
        update_status(db, directory.amc_south, action.id, ActionStatus.COMPLETED)


def test_reroute_target_checks(db, directory, route):
    action = route(directory.router_eq, "AMC Team", AMC_ROW)

    with pytest.raises(ValidationError):
        reroute_action(db, directory.amc_south, action.id, directory.ccr1.id, "AMC")
    with pytest.raises(ValidationError):
        reroute_action(db, directory.amc_south, action.id, directory.inactive_om.id, "O&M")
    with pytest.raises(AuthorizationError):
        reroute_action(db, directory.amc_north, action.id, directory.amc_jyothi.id, "AMC")


def test_reroute_review_moves_open_approval(db, directory, route):
    origin = route(directory.router_eq, "AMC Team", AMC_ROW)
    update_status(db, directory.amc_south, origin.id, ActionStatus.COMPLETED)
    approval = db.query(Approval).one()

    reroute_action(db, directory.router_eq, approval.action_id, directory.eq2.id, "Equipment")

    db.refresh(approval)
    assert approval.assigned_to_id == directory.eq2.id
    assert approval.status == ApprovalStatus.PENDING


def test_delete_keeps_approval(db, directory, route):
    origin = route(directory.router_eq, "AMC Team", AMC_ROW)
    update_status(db, directory.amc_south, origin.id, ActionStatus.COMPLETED)
    approval = db.query(Approval).one()

    with pytest.raises(AuthorizationError):
        delete_action(db, directory.eq2, approval.action_id)

    delete_action(db, directory.router_eq, approval.action_id)
    assert db.get(Action, approval.action_id) is None
    assert db.query(Approval).count() == 1


def test_deleted_review_frees_the_site_for_a_new_review(db, directory, route):
    o1 = route(directory.router_eq, "AMC Team", AMC_ROW, file_id="f1")
    update_status(db, directory.amc_south, o1.id, ActionStatus.COMPLETED)
    orphan = db.query(Approval).one()

    delete_action(db, directory.router_eq, orphan.action_id)
    db.refresh(orphan)
    assert orphan.open_key is None

    o2 = route(directory.router_eq, "AMC Team", AMC_ROW, file_id="f2")
    # deleted ids are never handed out again
    assert o2.id != orphan.action_id
    update_status(db, directory.amc_south, o2.id, ActionStatus.COMPLETED)

    fresh = db.query(Approval).filter(Approval.origin_action_id == o2.id).one()
    assert fresh.id != orphan.id
    assert fresh.open_key is not None
    assert db.get(Action, fresh.action_id).chain_origin_id == o2.id


def test_queue_queries(db, directory, route):
    a1 = route(directory.router_eq, "CCR Team", {"Site Code": "7D4000"})
    a2 = route(directory.router_eq, "AMC Team", AMC_ROW)

    # role-scoped queues are shared by every holder of the role
    assert [a.id for a in list_my_actions(db, directory.ccr2)] == [a1.id]
    assert [a.id for a in list_my_actions(db, directory.amc_south, search="4a10")] == [a2.id]
    assert list_my_actions(db, directory.amc_south, status=ActionStatus.COMPLETED) == []
    assert {a.id for a in list_routed_actions(db, directory.router_eq)} == {a1.id, a2.id}

    assert len(list_all_actions(db, directory.ccr1)) == 2
    with pytest.raises(AuthorizationError):
        list_all_actions(db, directory.amc_south)
