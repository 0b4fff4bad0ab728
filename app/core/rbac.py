from __future__ import annotations

from app.core.errors import error_for_status
from app.core.routing_policy import get_policy
from app.db.models.action import Action
from app.db.models.approval import Approval, ApprovalType
from app.db.models.site_record import SiteRecord
from app.db.models.user import User, Role


def require(condition: bool, msg: str = "Permission denied", status_code: int = 403) -> None:
    """Small helper used across services.

    Defaults to 403 (permission denied). For validation errors or not-found cases,
    pass `status_code=400/404`.
    """
    if not condition:
        raise error_for_status(status_code)(msg)


def is_admin(user: User) -> bool:
    return user.role == Role.ADMIN.value


def is_final_reviewer(user: User) -> bool:
    return user.role == get_policy().final_review_role


def is_reviewer(user: User) -> bool:
    return user.role == get_policy().review_role


def can_act_on(user: User, action: Action) -> bool:
    """Owner-restricted, except for role-scoped roles where any eligible holder may act."""
    if not user.is_eligible:
        return False
    if get_policy().is_role_scoped(action.assigned_to_role):
        return user.role == action.assigned_to_role
    return action.assigned_to_id == user.id


def can_delete(user: User, action: Action) -> bool:
    return action.assigned_to_id == user.id


def can_view_action(user: User, action: Action) -> bool:
    if is_admin(user) or is_final_reviewer(user):
        return True
    return user.id in (action.assigned_to_id, action.assigned_by_id) or can_act_on(user, action)


def can_view_approval(user: User, approval: Approval) -> bool:
    if is_admin(user):
        return True
    if is_final_reviewer(user) and approval.approval_type == ApprovalType.CCR_RESOLUTION:
        return True
    return user.id in (approval.assigned_to_id, approval.submitted_by_id)


def can_view_site_record(user: User, record: SiteRecord) -> bool:
    if is_admin(user) or is_final_reviewer(user):
        return True
    return user.id in (record.owner_id, record.original_owner_id)
