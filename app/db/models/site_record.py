import enum
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, Enum, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.db.models.approval import ApprovalStatus


class Observation(str, enum.Enum):
    PENDING = "Pending"
    RESOLVED = "Resolved"


# Approval status -> ccrStatus shown on the site record
_CCR_STATUS = {
    ApprovalStatus.PENDING: "Pending",
    ApprovalStatus.APPROVED: "Approved",
    ApprovalStatus.KEPT_FOR_MONITORING: "Kept for Monitoring",
    ApprovalStatus.RECHECK_REQUESTED: "",
}


class SiteRecord(Base):
    """Per-holder open-item projection of a routed site row."""

    __tablename__ = "site_records"
    __table_args__ = (UniqueConstraint("file_id", "row_key", name="uq_site_records_file_row"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_id: Mapped[str] = mapped_column(String(100), index=True)
    row_key: Mapped[str] = mapped_column(String(255))
    site_code: Mapped[str] = mapped_column(String(100), index=True)

    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    original_owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    observation: Mapped[Observation] = mapped_column(Enum(Observation), default=Observation.PENDING, index=True)
    task_status: Mapped[str] = mapped_column(String(200), default="")
    issue_type: Mapped[str] = mapped_column(String(200), default="")
    remarks: Mapped[str] = mapped_column(Text, default="")
    saved_from: Mapped[str] = mapped_column(String(100), default="")
    circle: Mapped[str | None] = mapped_column(String(50), nullable=True)
    division: Mapped[str | None] = mapped_column(String(100), nullable=True)
    row_data: Mapped[dict] = mapped_column(JSON, default=dict)

    # the final-review approval is the single authoritative sign-off field
    ccr_approval_id: Mapped[int | None] = mapped_column(ForeignKey("approvals.id"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    ccr_approval = relationship("Approval", foreign_keys=[ccr_approval_id])

    __mapper_args__ = {"version_id_col": version}

    @property
    def ccr_status(self) -> str:
        if self.ccr_approval is not None:
            return _CCR_STATUS[self.ccr_approval.status]
        return "Pending" if self.observation == Observation.RESOLVED else ""

    @property
    def is_finalized(self) -> bool:
        return self.ccr_approval is not None and self.ccr_approval.status == ApprovalStatus.APPROVED
