from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.db.models.site_record import Observation
from app.utils.observation import to_wire


class ObservationIn(BaseModel):
    file_id: str
    row_key: str
    # "" (or "Resolved") resolves the site, "Pending" reopens it
    observation: str
    remarks: str | None = None
    task_status: str | None = None


class SiteRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_id: str
    row_key: str
    site_code: str
    owner_id: int
    original_owner_id: int
    observation: Observation
    ccr_status: str
    is_finalized: bool
    task_status: str
    issue_type: str
    remarks: str
    saved_from: str
    circle: str | None
    division: str | None
    row_data: dict = Field(default_factory=dict)
    ccr_approval_id: int | None
    updated_at: datetime

    @field_serializer("observation")
    def _observation_wire(self, value: Observation) -> str:
        return to_wire(value)
