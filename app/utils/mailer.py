"""Email hand-off.

SMTP delivery belongs to an external service; this module only defines the
seam and a default that logs the message it would have sent.
"""

from __future__ import annotations

import logging
from typing import Protocol

from app.core.config import settings
from app.db.models.user import User

logger = logging.getLogger("fault_routing.mail")


class Mailer(Protocol):
    def send(self, user: User, template: str, data: dict) -> None: ...


class LoggingMailer:
    def send(self, user: User, template: str, data: dict) -> None:
        logger.info(
            "email template=%s to=%s from=%s data=%s",
            template,
            user.email or user.username,
            settings.EMAIL_FROM,
            data,
        )


_mailer: Mailer = LoggingMailer()


def get_mailer() -> Mailer:
    return _mailer


def set_mailer(mailer: Mailer) -> None:
    global _mailer
    _mailer = mailer
