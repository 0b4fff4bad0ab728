from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.auth.deps import get_admin_user
from app.db.session import get_db
from app.services.vendor_overrides import list_override_sites, replace_override_sites

router = APIRouter(prefix="/vendor-overrides", tags=["vendor-overrides"])


class OverrideSetIn(BaseModel):
    site_codes: list[str] = Field(default_factory=list)
    source: str = ""


class OverrideSetOut(BaseModel):
    site_codes: list[str]
    count: int


@router.get("", response_model=OverrideSetOut)
def get_overrides(db: Session = Depends(get_db), user=Depends(get_admin_user)):
    codes = list_override_sites(db)
    return {"site_codes": codes, "count": len(codes)}


@router.put("", response_model=OverrideSetOut)
def put_overrides(body: OverrideSetIn, db: Session = Depends(get_db), user=Depends(get_admin_user)):
    codes = replace_override_sites(db, body.site_codes, source=body.source or user.username)
    return {"site_codes": codes, "count": len(codes)}
