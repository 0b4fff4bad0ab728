from __future__ import annotations

import pytest

from app.core.errors import NoEligibleAssigneeError, ValidationError
from app.core.routing_policy import RoutingPolicy, get_policy
from app.db.models.action import Action
from app.services.routing import RoutingResolver
from app.services.vendor_overrides import replace_override_sites
from app.utils.rows import base_row_key, extract_site_code, is_routed_key, routed_row_key


def test_override_site_wins_over_circle(db, directory):
    replace_override_sites(db, ["3W2872"])
    res = RoutingResolver(db).resolve("AMC Team", {"Site Code": "3W2872", "CIRCLE": "NORTH"})

    assert res.strategy == "vendor_override"
    assert res.user.id == directory.amc_jyothi.id
    assert res.vendor == get_policy().override_vendor
    assert res.site_code == "3W2872"


def test_override_site_code_is_normalized(db, directory):
    replace_override_sites(db, [" 3w2872 "])
    res = RoutingResolver(db).resolve("AMC Team", {"site code": "3w2872", "Circle": "south"})

    assert res.strategy == "vendor_override"
    assert res.user.id == directory.amc_jyothi.id


def test_circle_routing_picks_vendor_group(db, directory):
    south = RoutingResolver(db).resolve("AMC Team", {"Site Code": "4A1001", "CIRCLE": "WEST"})
    north = RoutingResolver(db).resolve("AMC Team", {"Site Code": "4A1002", "CIRCLE": "east"})

    assert south.strategy == "circle"
    assert south.user.id == directory.amc_south.id
    assert south.scope == "WEST"
    assert north.user.id == directory.amc_north.id


def test_circle_derived_from_division(db, directory):
    res = RoutingResolver(db).resolve("AMC Team", {"Site Code": "4A1003", "Division": "Jayanagar"})

    assert res.circle == "SOUTH"
    assert res.user.id == directory.amc_south.id


def test_override_already_held_falls_back_to_circle(db, directory, route):
    replace_override_sites(db, ["3W2872"])
    first = route(directory.router_eq, "AMC Team", {"Site Code": "3W2872", "CIRCLE": "NORTH"})
    assert first.assigned_to_id == directory.amc_jyothi.id

    res = RoutingResolver(db).resolve("AMC Team", {"Site Code": "3W2872", "CIRCLE": "NORTH"})
    assert res.strategy == "circle"
    assert res.user.id == directory.amc_north.id


def test_vendor_routed_without_circle_is_rejected(db, directory):
    with pytest.raises(ValidationError):
        RoutingResolver(db).resolve("AMC Team", {"Site Code": "4A1004", "Division": "Unknown Town"})


def test_unmapped_circle_has_no_assignee(db, directory):
    with pytest.raises(NoEligibleAssigneeError) as exc:
        RoutingResolver(db).resolve("AMC Team", {"Site Code": "4A1005", "CIRCLE": "CENTRAL"})
    assert exc.value.circle == "CENTRAL"


def test_role_scoped_takes_first_eligible_holder(db, directory):
    res = RoutingResolver(db).resolve("CCR Team", {"Site Code": "4A1006", "DIVISION": "HSR"})

    assert res.strategy == "role"
    assert res.user.id == directory.ccr1.id


def test_division_scoped_skips_ineligible_users(db, directory):
    res = RoutingResolver(db).resolve("O&M Team", {"Site Code": "5B2000", "DIVISION": "HSR"})

    # inactive_om and pending_om are older accounts in the same division
    assert res.strategy == "division"
    assert res.user.id == directory.om_hsr.id
    assert res.scope == "HSR"


def test_division_without_eligible_user(db, directory):
    with pytest.raises(NoEligibleAssigneeError) as exc:
        RoutingResolver(db).resolve("Relay Team", {"Site Code": "5B2001", "DIVISION": "HSR"})

    err = exc.value
    assert err.status_code == 404
    assert err.role == "Relay"
    assert err.division == "HSR"
    assert err.to_dict()["context"]["division"] == "HSR"


def test_resolve_does_not_write(db, directory):
    RoutingResolver(db).resolve("O&M Team", {"Site Code": "5B2000", "DIVISION": "HSR"})
    assert db.query(Action).count() == 0


def test_unknown_team_and_missing_division(db, directory):
    with pytest.raises(ValidationError):
        RoutingResolver(db).resolve("Catering Team", {"Site Code": "X1"})
    with pytest.raises(ValidationError):
        RoutingResolver(db).resolve("Relay Team", {"Site Code": "X1"})


def test_team_label_matches_role_name(db, directory):
    res = RoutingResolver(db).resolve("relay", {"Site Code": "6C3000", "division": "Koramangala"})
    assert res.user.id == directory.relay_kor.id


def test_site_code_fuzzy_header():
    policy = RoutingPolicy()
    assert extract_site_code({"Site Code No.": " 3w 2872 "}, policy) == "3W 2872"
    assert extract_site_code({"Remarks": "none"}, policy) == ""


def test_routed_row_keys():
    key = routed_row_key("file-1:7", "amc_south", 1700000000000)

    assert key == "file-1:7-routed-amc_south-1700000000000"
    assert is_routed_key(key)
    assert base_row_key(key) == "file-1:7"
    assert base_row_key("file-1:7") == "file-1:7"
