from fastapi import Request, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.rbac import is_admin
from app.core.security import verify_session
from app.db.models.user import User

SESSION_COOKIE = "sid"

def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise AuthenticationError("Not authenticated")
    payload = verify_session(token)
    if not payload or "user_id" not in payload:
        raise AuthenticationError("Invalid session")
    user = db.get(User, payload["user_id"])
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("User is inactive")
    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        raise AuthorizationError("Admin only")
    return user
