from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.core.workflow import Decision
from app.db.models.action import ActionStatus, Priority


class SubmitRoutingIn(BaseModel):
    row_data: dict
    routing: str
    issue_type: str
    source_file_id: str
    headers: list[str] = Field(default_factory=list)
    row_key: str | None = None
    remarks: str = ""
    priority: Priority = Priority.MEDIUM
    photos: list[str] = Field(default_factory=list)
    original_row_index: int | None = None
    task_status: str | None = None


class StatusUpdateIn(BaseModel):
    status: ActionStatus
    remarks: str | None = None
    # explicit reviewer decision; older clients omit it and send remarks only
    decision: Decision | None = None


class RerouteIn(BaseModel):
    target_user_id: int
    target_role: str
    remarks: str | None = None
    photos: list[str] = Field(default_factory=list)


class ActionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    row_data: dict
    headers: list[str]
    row_key: str | None
    site_code: str | None
    routing_team: str
    issue_type: str
    assigned_to_id: int
    assigned_to_role: str
    assigned_to_division: str | None
    assigned_to_vendor: str | None
    assigned_by_id: int
    assigned_by_role: str
    source_file_id: str
    original_row_index: int | None
    status: ActionStatus
    priority: Priority
    remarks: str
    photos: list[str]
    chain_origin_id: int | None
    parent_action_id: int | None
    assigned_at: datetime
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ActionLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action_id: int
    actor_id: int | None
    event: str
    from_status: str
    to_status: str
    comment: str
    created_at: datetime
