import enum
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


class ApprovalType(str, enum.Enum):
    AMC_RESOLUTION = "AMC Resolution Approval"  # stage 1, Equipment review
    CCR_RESOLUTION = "CCR Resolution Approval"  # stage 2, final sign-off


class ApprovalStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    KEPT_FOR_MONITORING = "Kept for Monitoring"
    RECHECK_REQUESTED = "Recheck Requested"


def open_key_for(site_code: str | None, approval_type: ApprovalType, action_id: int) -> str:
    """Uniqueness key for the single open approval per (site, type)."""
    site = site_code or f"#{action_id}"
    return f"{site}|{approval_type.value}"


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # no FK: approvals outlive deleted actions
    action_id: Mapped[int] = mapped_column(Integer, index=True)
    site_code: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    approval_type: Mapped[ApprovalType] = mapped_column(Enum(ApprovalType), index=True)
    status: Mapped[ApprovalStatus] = mapped_column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, index=True)

    submitted_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    submitted_by_role: Mapped[str] = mapped_column(String(50))
    assigned_to_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    assigned_to_role: Mapped[str] = mapped_column(String(50), index=True)

    approved_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_by_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    approval_remarks: Mapped[str] = mapped_column(Text, default="")
    submission_remarks: Mapped[str] = mapped_column(Text, default="")
    photos: Mapped[list] = mapped_column(JSON, default=list)

    file_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    row_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_row_data: Mapped[dict] = mapped_column(JSON, default=dict)
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    origin_action_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    prior_action_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # set only while Pending; NULLs never collide so decided rows don't block new ones
    open_key: Mapped[str | None] = mapped_column(String(400), nullable=True, unique=True)
    # one stage per (origin, review cycle, type)
    chain_key: Mapped[str] = mapped_column(String(200), unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_open(self) -> bool:
        return self.status == ApprovalStatus.PENDING
