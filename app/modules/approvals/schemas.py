from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.db.models.approval import ApprovalStatus, ApprovalType


class ApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action_id: int
    site_code: str | None
    approval_type: ApprovalType
    status: ApprovalStatus
    submitted_by_id: int
    submitted_by_role: str
    assigned_to_id: int
    assigned_to_role: str
    approved_by_id: int | None
    approved_by_role: str | None
    approved_at: datetime | None
    approval_remarks: str
    submission_remarks: str
    photos: list[str]
    file_id: str | None
    row_key: str | None
    original_row_data: dict
    metadata: dict = Field(validation_alias="meta")
    origin_action_id: int | None
    prior_action_id: int | None
    created_at: datetime


class ApprovalStatsOut(BaseModel):
    pending: int
    approved: int
    kept_for_monitoring: int
    recheck_requested: int
    total: int


class ResetApprovalsIn(BaseModel):
    approved_date: date
    site_code: str
    roles: list[str] = Field(default_factory=list)


class ResetApprovalsOut(BaseModel):
    reset: int
