"""CCR finalization: which site records still count as active.

A record's sign-off state is read from its linked final-review approval,
never stored separately, so "approved" has exactly one source of truth.
"""

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, contains_eager

from app.db.models.approval import Approval, ApprovalStatus
from app.db.models.site_record import SiteRecord


def link_final_approval(db: Session, approval: Approval) -> int:
    """Point every record of the approval's (file, site) at it. Caller commits."""
    if not approval.file_id or not approval.site_code:
        return 0
    records = (
        db.query(SiteRecord)
        .filter(SiteRecord.file_id == approval.file_id, SiteRecord.site_code == approval.site_code)
        .all()
    )
    for rec in records:
        rec.ccr_approval_id = approval.id
    return len(records)


def site_records_query(db: Session, include_approved: bool = False) -> Query:
    q = (
        db.query(SiteRecord)
        .outerjoin(Approval, SiteRecord.ccr_approval_id == Approval.id)
        .options(contains_eager(SiteRecord.ccr_approval))
    )
    if not include_approved:
        q = q.filter(or_(Approval.id.is_(None), Approval.status != ApprovalStatus.APPROVED))
    return q


def active_site_records(
    db: Session,
    *,
    owner_id: int | None = None,
    original_owner_id: int | None = None,
    file_id: str | None = None,
    site_code: str | None = None,
    include_approved: bool = False,
) -> list[SiteRecord]:
    q = site_records_query(db, include_approved=include_approved)
    if owner_id is not None:
        q = q.filter(SiteRecord.owner_id == owner_id)
    if original_owner_id is not None:
        q = q.filter(SiteRecord.original_owner_id == original_owner_id)
    if file_id:
        q = q.filter(SiteRecord.file_id == file_id)
    if site_code:
        q = q.filter(SiteRecord.site_code == site_code)
    return q.order_by(SiteRecord.updated_at.desc(), SiteRecord.id.desc()).all()
