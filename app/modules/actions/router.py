from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.db.models.action import ActionStatus, Priority
from app.db.session import get_db
from app.modules.actions.schemas import ActionLogOut, ActionOut, RerouteIn, StatusUpdateIn, SubmitRoutingIn
from app.services import actions as store

router = APIRouter(prefix="/actions", tags=["actions"])


@router.post("/submit", response_model=ActionOut, status_code=201)
def submit_routing(body: SubmitRoutingIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    req = store.RoutingRequest(**body.model_dump())
    return store.create_action(db, user, req)


@router.get("/my-actions", response_model=list[ActionOut])
def my_actions(
    status: ActionStatus | None = None,
    priority: Priority | None = None,
    search: str | None = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return store.list_my_actions(db, user, status=status, priority=priority, search=search)


@router.get("/my-routed-actions", response_model=list[ActionOut])
def my_routed_actions(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.list_routed_actions(db, user)


@router.get("", response_model=list[ActionOut])
def all_actions(status: ActionStatus | None = None, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.list_all_actions(db, user, status=status)


@router.get("/{action_id}", response_model=ActionOut)
def get_action(action_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.get_visible_action(db, user, action_id)


@router.get("/{action_id}/history", response_model=list[ActionLogOut])
def history(action_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.action_history(db, user, action_id)


@router.put("/{action_id}/status", response_model=ActionOut)
def update_status(action_id: int, body: StatusUpdateIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.update_status(db, user, action_id, body.status, remarks=body.remarks, decision=body.decision)


@router.put("/{action_id}/reroute", response_model=ActionOut)
def reroute(action_id: int, body: RerouteIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return store.reroute_action(
        db,
        user,
        action_id,
        body.target_user_id,
        body.target_role,
        remarks=body.remarks,
        photos=body.photos,
    )


@router.delete("/{action_id}", status_code=204)
def delete(action_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    store.delete_action(db, user, action_id)
