import enum
from sqlalchemy import String, Integer, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


class Role(str, enum.Enum):
    ADMIN = "Admin"
    EQUIPMENT = "Equipment"
    CCR = "CCR"
    AMC = "AMC"
    RTU_COMMUNICATION = "RTU/Communication"
    OM = "O&M"
    RELAY = "Relay"
    SYSTEM = "System"
    CD = "C&D"
    PLANNING = "Planning"


class UserStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """Directory entry. Owned by the external auth/admin service; read-only here."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(120), default="")
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # stored as text so routing policy can introduce roles without a migration
    role: Mapped[str] = mapped_column(String(50), index=True)
    vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    circles: Mapped[list] = mapped_column(JSON, default=list)
    divisions: Mapped[list] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=UserStatus.PENDING.value, index=True)

    @property
    def is_eligible(self) -> bool:
        return bool(self.is_active) and self.status == UserStatus.APPROVED.value

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def in_circle(self, circle: str) -> bool:
        c = circle.strip().upper()
        return any(str(x).strip().upper() == c for x in (self.circles or []))

    def in_division(self, division: str) -> bool:
        d = division.strip().upper()
        return any(str(x).strip().upper() == d for x in (self.divisions or []))
