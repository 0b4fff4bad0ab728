from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.auth.deps import get_admin_user
from app.db.session import get_db
from app.services import effects

router = APIRouter(prefix="/effects", tags=["effects"])


class EffectFailureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    payload: dict
    error: str
    attempts: int
    resolved: bool
    created_at: datetime
    last_attempt_at: datetime


@router.get("/failures", response_model=list[EffectFailureOut])
def list_failures(include_resolved: bool = False, db: Session = Depends(get_db), user=Depends(get_admin_user)):
    return effects.list_failures(db, include_resolved=include_resolved)


@router.post("/failures/{failure_id}/retry", response_model=EffectFailureOut)
def retry(failure_id: int, db: Session = Depends(get_db), user=Depends(get_admin_user)):
    return effects.retry_failure(db, failure_id)
