"""RoutingResolver: who should receive a ticket.

Pure resolution. It reads the user directory, the vendor-override set and
open actions, but never writes; callers persist whatever it returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.errors import NoEligibleAssigneeError, ValidationError
from app.core.routing_policy import RoutingPolicy, get_policy
from app.db.models.action import Action, ActionStatus
from app.db.models.user import User, UserStatus
from app.services.vendor_overrides import VendorOverrideCache
from app.utils.rows import extract_circle, extract_division, extract_site_code, normalize_vendor

logger = logging.getLogger("fault_routing.routing")


@dataclass(frozen=True, slots=True)
class Resolution:
    user: User
    role: str
    strategy: str  # vendor_override | circle | role | division
    site_code: str = ""
    vendor: str | None = None
    circle: str | None = None
    division: str | None = None

    @property
    def scope(self) -> str | None:
        """Circle for vendor-routed roles, division otherwise."""
        return self.circle if self.strategy in ("vendor_override", "circle") else self.division


class RoutingResolver:
    def __init__(
        self,
        db: Session,
        policy: RoutingPolicy | None = None,
        overrides: VendorOverrideCache | None = None,
    ):
        self.db = db
        self.policy = policy or get_policy()
        self.overrides = overrides or VendorOverrideCache(db)

    def role_for(self, team_label: str) -> str:
        role = self.policy.role_for_team(team_label)
        if role is None:
            raise ValidationError(f"Unknown routing team: {team_label!r}", routing=team_label)
        return role

    def eligible_users(self, role: str) -> list[User]:
        """Active, approved users of a role, oldest account first."""
        return (
            self.db.query(User)
            .filter(User.role == role, User.is_active == True, User.status == UserStatus.APPROVED.value)
            .order_by(User.id)
            .all()
        )

    def resolve(self, team_label: str, row: dict, requester: User | None = None) -> Resolution:
        role = self.role_for(team_label)
        site_code = extract_site_code(row, self.policy)

        if self.policy.is_vendor_routed(role):
            res = self._resolve_vendor_routed(role, row, site_code)
        elif self.policy.is_role_scoped(role):
            res = self._resolve_role_scoped(role, site_code)
        else:
            res = self._resolve_division_scoped(role, row, site_code)

        logger.info(
            "Routed site=%s team=%s -> user=%s (%s, vendor=%s, scope=%s) requested_by=%s",
            site_code or "-",
            team_label,
            res.user.username,
            res.strategy,
            res.vendor or "-",
            res.scope or "-",
            requester.username if requester else "-",
        )
        return res

    # ---- strategies ----

    def _vendor_users(self, role: str, vendor: str) -> list[User]:
        want = normalize_vendor(vendor)
        return [u for u in self.eligible_users(role) if normalize_vendor(u.vendor) == want]

    def _override_already_routed(self, site_code: str, role: str) -> bool:
        vendor = normalize_vendor(self.policy.override_vendor)
        open_actions = (
            self.db.query(Action)
            .filter(
                Action.site_code == site_code,
                Action.assigned_to_role == role,
                Action.status != ActionStatus.COMPLETED,
            )
            .all()
        )
        return any(normalize_vendor(a.assigned_to_vendor) == vendor for a in open_actions)

    def _resolve_vendor_routed(self, role: str, row: dict, site_code: str) -> Resolution:
        division = extract_division(row, self.policy) or None
        circle = extract_circle(row, self.policy) or None
        if not circle and division:
            circle = self.policy.circle_for_division(division)

        # the override list wins over circle routing even when the circle is known
        if site_code and self.overrides.contains(site_code):
            if self._override_already_routed(site_code, role):
                logger.info("Override vendor already holds site %s; using circle routing", site_code)
            else:
                vendor = self.policy.override_vendor
                users = self._vendor_users(role, vendor)
                if not users:
                    raise NoEligibleAssigneeError(role, vendor=vendor, circle=circle, division=division, site_code=site_code)
                return Resolution(users[0], role, "vendor_override", site_code, vendor, circle, division)

        if not circle:
            raise ValidationError(
                "Circle could not be determined from the row (no circle and no known division)",
                site_code=site_code or None,
                division=division,
            )
        vendor = self.policy.vendor_for_circle(circle)
        if vendor is None:
            raise NoEligibleAssigneeError(role, circle=circle, division=division, site_code=site_code or None)
        users = [u for u in self._vendor_users(role, vendor) if u.in_circle(circle)]
        if not users:
            raise NoEligibleAssigneeError(role, vendor=vendor, circle=circle, division=division, site_code=site_code or None)
        return Resolution(users[0], role, "circle", site_code, vendor, circle, division)

    def _resolve_role_scoped(self, role: str, site_code: str) -> Resolution:
        # explicit "any-of" policy: first eligible holder, no load balancing
        users = self.eligible_users(role)
        if not users:
            raise NoEligibleAssigneeError(role, site_code=site_code or None)
        return Resolution(users[0], role, "role", site_code, users[0].vendor)

    def _resolve_division_scoped(self, role: str, row: dict, site_code: str) -> Resolution:
        division = extract_division(row, self.policy)
        if not division:
            raise ValidationError("Division is required to route this team", role=role, site_code=site_code or None)
        users = [u for u in self.eligible_users(role) if u.in_division(division)]
        if not users:
            raise NoEligibleAssigneeError(role, division=division, site_code=site_code or None)
        return Resolution(users[0], role, "division", site_code, users[0].vendor, division=division)
