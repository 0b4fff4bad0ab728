from __future__ import annotations

from sqlalchemy.orm import Session

from app.db.models.notification import Notification
from app.utils.badges import invalidate_badge


def notify(
    db: Session,
    user_id: int,
    message: str,
    *,
    title: str = "",
    link: str | None = None,
    metadata: dict | None = None,
    type: str = "info",
    category: str = "action",
) -> Notification:
    """Create an in-app notification (unread).

    Note: Caller should commit the DB session.
    """
    n = Notification(
        user_id=user_id,
        title=title,
        message=message[:1000],
        type=type,
        category=category,
        link=link,
        meta=metadata or {},
        is_read=False,
    )
    db.add(n)
    invalidate_badge(user_id)
    return n
