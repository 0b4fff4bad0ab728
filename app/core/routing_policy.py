"""Routing policy as data.

Team labels, vendor groups and header aliases live here instead of in
conditionals, and can be replaced by a JSON file (`ROUTING_POLICY_FILE`)
without a redeploy.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

from app.core.config import settings

logger = logging.getLogger("fault_routing.policy")


class CircleVendorGroup(BaseModel):
    circles: list[str]
    vendor: str


class RoutingPolicy(BaseModel):
    # team label shown in the UI -> canonical role
    teams: dict[str, str] = Field(
        default_factory=lambda: {
            "Equipment Team": "Equipment",
            "RTU/Communication Team": "RTU/Communication",
            "AMC Team": "AMC",
            "O&M Team": "O&M",
            "Relay Team": "Relay",
            "CCR Team": "CCR",
            "System Team": "System",
            "C&D's Team": "C&D",
        }
    )
    vendor_routed_roles: list[str] = Field(default_factory=lambda: ["AMC"])
    role_scoped_roles: list[str] = Field(default_factory=lambda: ["CCR"])
    review_role: str = "Equipment"
    final_review_role: str = "CCR"

    override_vendor: str = "Jyothi Electricals"
    circle_vendors: list[CircleVendorGroup] = Field(
        default_factory=lambda: [
            CircleVendorGroup(circles=["SOUTH", "WEST"], vendor="Shrishaila Electricals(India Pvt ltd)"),
            CircleVendorGroup(circles=["NORTH", "EAST"], vendor="Spectrum Consultants"),
        ]
    )
    division_circles: dict[str, str] = Field(
        default_factory=lambda: {
            "HSR": "SOUTH",
            "JAYANAGAR": "SOUTH",
            "KORAMANGALA": "SOUTH",
        }
    )

    site_code_headers: list[str] = Field(
        default_factory=lambda: ["Site Code", "SITE CODE", "SiteCode", "Site_Code", "site code", "site_code"]
    )
    circle_headers: list[str] = Field(default_factory=lambda: ["CIRCLE", "Circle", "circle"])
    division_headers: list[str] = Field(
        default_factory=lambda: ["DIVISION", "Division", "division", "DIVISION NAME", "Division Name"]
    )

    def role_for_team(self, label: str) -> str | None:
        label = (label or "").strip()
        if not label:
            return None
        if label in self.teams:
            return self.teams[label]
        folded = label.casefold()
        for team, role in self.teams.items():
            if team.casefold() == folded or role.casefold() == folded:
                return role
        return None

    def team_for_role(self, role: str) -> str:
        for team, r in self.teams.items():
            if r == role:
                return team
        return role

    def is_vendor_routed(self, role: str) -> bool:
        return role in self.vendor_routed_roles

    def is_role_scoped(self, role: str) -> bool:
        return role in self.role_scoped_roles

    def vendor_for_circle(self, circle: str) -> str | None:
        c = circle.strip().upper()
        for group in self.circle_vendors:
            if c in (x.upper() for x in group.circles):
                return group.vendor
        return None

    def circle_for_division(self, division: str) -> str | None:
        return {k.upper(): v for k, v in self.division_circles.items()}.get(division.strip().upper())


def load_policy(path: str | None = None) -> RoutingPolicy:
    path = path if path is not None else settings.ROUTING_POLICY_FILE
    if not path:
        return RoutingPolicy()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    logger.info("Loaded routing policy from %s", path)
    return RoutingPolicy.model_validate(data)


@lru_cache(maxsize=1)
def get_policy() -> RoutingPolicy:
    return load_policy()
