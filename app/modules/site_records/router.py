from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.db.session import get_db
from app.modules.site_records.schemas import ObservationIn, SiteRecordOut
from app.services import ownership
from app.utils.rows import normalize_site_code

router = APIRouter(prefix="/site-records", tags=["site-records"])


@router.get("", response_model=list[SiteRecordOut])
def list_records(
    scope: Literal["owner", "original", "all"] = "owner",
    include_approved: bool = False,
    file_id: str | None = None,
    site_code: str | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return ownership.list_site_records(
        db,
        user,
        scope=scope,
        include_approved=include_approved,
        file_id=file_id,
        site_code=normalize_site_code(site_code) or None,
    )


@router.put("/observation", response_model=SiteRecordOut)
def resolve_observation(body: ObservationIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return ownership.resolve_site_observation(
        db,
        user,
        body.file_id,
        body.row_key,
        body.observation,
        remarks=body.remarks,
        task_status=body.task_status,
    )


@router.get("/{record_id}", response_model=SiteRecordOut)
def get_record(record_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return ownership.get_site_record(db, user, record_id)
