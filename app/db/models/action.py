import enum
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base


class ActionStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class Priority(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Action(Base):
    __tablename__ = "actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # snapshot of the source row, captured once at creation
    row_data: Mapped[dict] = mapped_column(JSON, default=dict)
    headers: Mapped[list] = mapped_column(JSON, default=list)
    row_key: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    site_code: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    routing_team: Mapped[str] = mapped_column(String(100))
    issue_type: Mapped[str] = mapped_column(String(200), index=True)

    assigned_to_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    assigned_to_role: Mapped[str] = mapped_column(String(50), index=True)
    # circle for vendor-routed roles, division otherwise
    assigned_to_division: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_to_vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    assigned_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    assigned_by_role: Mapped[str] = mapped_column(String(50))

    source_file_id: Mapped[str] = mapped_column(String(100), index=True)
    original_row_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[ActionStatus] = mapped_column(Enum(ActionStatus), default=ActionStatus.PENDING, index=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), default=Priority.MEDIUM)
    remarks: Mapped[str] = mapped_column(Text, default="")
    photos: Mapped[list] = mapped_column(JSON, default=list)

    # approval chain links
    chain_origin_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    parent_action_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_cycle: Mapped[int] = mapped_column(Integer, default=0)

    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    assigned_by = relationship("User", foreign_keys=[assigned_by_id])

    # ids are referenced by approvals without an FK, so sqlite must never reuse one
    __table_args__ = {"sqlite_autoincrement": True}
    __mapper_args__ = {"version_id_col": version}
