# Import all models so SQLAlchemy metadata is fully populated on startup.
from app.db.models.user import User
from app.db.models.action import Action
from app.db.models.approval import Approval
from app.db.models.site_record import SiteRecord
from app.db.models.notification import Notification
from app.db.models.workflow_log import WorkflowLog
from app.db.models.vendor_override import VendorOverrideSite
from app.db.models.effect_failure import EffectFailure


__all__ = [
    "User",
    "Action",
    "Approval",
    "SiteRecord",
    "Notification",
    "WorkflowLog",
    "VendorOverrideSite",
    "EffectFailure",
]
