from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.db.models.user import User, Role, UserStatus
from app.db.models.vendor_override import VendorOverrideSite
from app.core.routing_policy import get_policy

logger = logging.getLogger("fault_routing.seed")


def _get_or_create_user(
    db: Session,
    username: str,
    role: Role,
    *,
    full_name: str = "",
    vendor: str | None = None,
    circles: list[str] | None = None,
    divisions: list[str] | None = None,
) -> User:
    u = db.query(User).filter(User.username == username).first()
    if not u:
        u = User(
            username=username,
            full_name=full_name or username,
            email=f"{username}@example.com",
            role=role.value,
            vendor=vendor,
            circles=circles or [],
            divisions=divisions or [],
            is_active=True,
            status=UserStatus.APPROVED.value,
        )
        db.add(u)
        db.flush()  # populate u.id
    return u


def _get_or_create_override(db: Session, site_code: str) -> VendorOverrideSite:
    o = db.query(VendorOverrideSite).filter(VendorOverrideSite.site_code == site_code).first()
    if not o:
        o = VendorOverrideSite(site_code=site_code, source="seed")
        db.add(o)
        db.flush()
    return o


def seed_sample(db: Session) -> None:
    """A small directory covering every routing strategy. Caller commits."""
    policy = get_policy()
    groups = {g.vendor: g.circles for g in policy.circle_vendors}

    _get_or_create_user(db, "admin", Role.ADMIN, full_name="Dev Admin")
    _get_or_create_user(db, "equipment1", Role.EQUIPMENT, divisions=["HSR", "JAYANAGAR"])
    _get_or_create_user(db, "ccr1", Role.CCR)
    _get_or_create_user(db, "om_hsr", Role.OM, divisions=["HSR"])
    _get_or_create_user(db, "relay_kor", Role.RELAY, divisions=["KORAMANGALA"])

    for i, (vendor, circles) in enumerate(groups.items(), start=1):
        _get_or_create_user(db, f"amc_vendor{i}", Role.AMC, vendor=vendor, circles=list(circles))
    _get_or_create_user(
        db,
        "amc_override",
        Role.AMC,
        vendor=policy.override_vendor,
        circles=[c for g in policy.circle_vendors for c in g.circles],
    )

    _get_or_create_override(db, "3W2872")
    logger.info("Sample directory seeded")


if __name__ == "__main__":
    from app.db.session import SessionLocal

    logging.basicConfig(level=logging.INFO)
    session = SessionLocal()
    try:
        seed_sample(session)
        session.commit()
    finally:
        session.close()
