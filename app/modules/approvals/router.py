from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.deps import get_admin_user, get_current_user
from app.db.models.approval import ApprovalStatus, ApprovalType
from app.db.session import get_db
from app.modules.approvals.schemas import ApprovalOut, ApprovalStatsOut, ResetApprovalsIn, ResetApprovalsOut
from app.services import approvals as chain

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("", response_model=list[ApprovalOut])
def list_approvals(
    status: ApprovalStatus | None = None,
    approval_type: ApprovalType | None = None,
    site_code: str | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return chain.list_approvals(db, user, status=status, approval_type=approval_type, site_code=site_code)


@router.get("/stats", response_model=ApprovalStatsOut)
def stats(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return chain.approval_stats(db, user)


@router.get("/{approval_id}", response_model=ApprovalOut)
def get_approval(approval_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return chain.get_approval(db, user, approval_id)


@router.post("/reset", response_model=ResetApprovalsOut)
def reset(body: ResetApprovalsIn, db: Session = Depends(get_db), user=Depends(get_admin_user)):
    n = chain.reset_approvals(db, user, body.approved_date, body.site_code, roles=body.roles or None)
    return {"reset": n}
