"""Secondary effects.

Anything that happens *because* a primary write succeeded (chain advance,
ownership transfer, notifications, email) runs here after that write has
committed. Each effect gets its own transaction. A failure is rolled back,
logged and stored as an `EffectFailure` row that an admin can retry; it never
reaches the caller of the primary operation.

Handlers take `(db, **payload)` and may return follow-up effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, SecondaryEffectError
from app.db.models.effect_failure import EffectFailure
from app.db.models.user import User
from app.utils.mailer import get_mailer
from app.utils.notify import notify

logger = logging.getLogger("fault_routing.effects")


@dataclass(frozen=True)
class Effect:
    kind: str
    payload: dict = field(default_factory=dict)


def notify_effect(
    db: Session,
    user_id: int,
    message: str,
    title: str = "",
    link: str | None = None,
    metadata: dict | None = None,
    category: str = "action",
) -> None:
    notify(db, user_id, message, title=title, link=link, metadata=metadata, category=category)


def email_effect(db: Session, user_id: int, template: str, data: dict | None = None) -> None:
    if not settings.EMAIL_ENABLED:
        return
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", user_id=user_id)
    get_mailer().send(user, template, data or {})


def _handlers() -> dict[str, Callable[..., list[Effect] | None]]:
    from app.services import approvals, ownership

    return {
        "advance_chain": approvals.advance_chain_effect,
        "open_review": approvals.open_review_effect,
        "revert_origin": approvals.revert_origin,
        "assign_site_records": ownership.assign_site_records_effect,
        "complete_origin": ownership.complete_origin,
        "reopen_site": ownership.reopen_site,
        "notify": notify_effect,
        "email": email_effect,
    }


def _apply(db: Session, effect: Effect) -> list[Effect]:
    handler = _handlers().get(effect.kind)
    if handler is None:
        raise NotFoundError(f"Unknown effect kind: {effect.kind}")
    follow_ups = handler(db, **effect.payload) or []
    db.commit()
    return list(follow_ups)


def _record_failure(db: Session, effect: Effect, exc: BaseException) -> EffectFailure:
    failure = EffectFailure(kind=effect.kind, payload=effect.payload, error=f"{type(exc).__name__}: {exc}"[:4000])
    db.add(failure)
    db.commit()
    return failure


def run_effects(db: Session, effects: list[Effect]) -> list[EffectFailure]:
    """Run effects (and their follow-ups) in order; return any failures."""
    failures: list[EffectFailure] = []
    queue = list(effects)
    while queue:
        effect = queue.pop(0)
        try:
            queue.extend(_apply(db, effect))
        except Exception as exc:
            db.rollback()
            err = SecondaryEffectError(effect.kind, exc, payload=effect.payload)
            logger.exception("%s", err.detail)
            failures.append(_record_failure(db, effect, exc))
    return failures


def list_failures(db: Session, include_resolved: bool = False) -> list[EffectFailure]:
    q = db.query(EffectFailure)
    if not include_resolved:
        q = q.filter(EffectFailure.resolved == False)
    return q.order_by(EffectFailure.id.desc()).limit(500).all()


def retry_failure(db: Session, failure_id: int) -> EffectFailure:
    failure = db.get(EffectFailure, failure_id)
    if failure is None:
        raise NotFoundError(f"Effect failure {failure_id} not found")
    if failure.resolved:
        raise ConflictError("Effect already succeeded", failure_id=failure_id)

    effect = Effect(failure.kind, dict(failure.payload or {}))
    try:
        follow_ups = _apply(db, effect)
    except Exception as exc:
        db.rollback()
        failure = db.get(EffectFailure, failure_id)
        failure.attempts += 1
        failure.error = f"{type(exc).__name__}: {exc}"[:4000]
        failure.last_attempt_at = datetime.utcnow()
        db.commit()
        logger.warning("Retry of effect %s (#%s) failed: %s", effect.kind, failure_id, exc)
        raise SecondaryEffectError(effect.kind, exc, failure_id=failure_id) from exc

    failure.resolved = True
    failure.attempts += 1
    failure.last_attempt_at = datetime.utcnow()
    db.commit()
    logger.info("Effect %s (#%s) succeeded on retry", effect.kind, failure_id)
    run_effects(db, follow_ups)
    return failure
