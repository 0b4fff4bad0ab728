"""Helpers for reading fields out of spreadsheet row snapshots.

Uploaded sheets use inconsistent headers ("Site Code", "SITE_CODE", ...), so
every lookup goes through an alias list first and a fuzzy header scan second.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable

from app.core.routing_policy import RoutingPolicy

_WS = re.compile(r"\s+")
ROUTED_MARKER = "-routed-"


def normalize_site_code(value) -> str:
    if value is None:
        return ""
    return _WS.sub(" ", str(value)).strip().upper()


def normalize_vendor(value) -> str:
    if value is None:
        return ""
    return _WS.sub(" ", str(value)).strip().casefold()


def _cell(row: dict, key: str) -> str:
    v = row.get(key)
    if v is None:
        return ""
    return str(v).strip()


def _lookup(row: dict, aliases: Iterable[str], fallback: Callable[[str], bool]) -> str:
    for alias in aliases:
        v = _cell(row, alias)
        if v:
            return v
    for key in row:
        if fallback(str(key).lower()):
            v = _cell(row, key)
            if v:
                return v
    return ""


def extract_site_code(row: dict, policy: RoutingPolicy) -> str:
    raw = _lookup(row or {}, policy.site_code_headers, lambda k: "site" in k and "code" in k)
    return normalize_site_code(raw)


def extract_circle(row: dict, policy: RoutingPolicy) -> str:
    raw = _lookup(row or {}, policy.circle_headers, lambda k: k.strip() == "circle")
    return raw.upper()


def extract_division(row: dict, policy: RoutingPolicy) -> str:
    return _lookup(row or {}, policy.division_headers, lambda k: "division" in k)


def base_row_key(row_key: str) -> str:
    """Strip the routed suffix so A and all its routed copies share one base."""
    idx = row_key.find(ROUTED_MARKER)
    return row_key[:idx] if idx >= 0 else row_key


def routed_row_key(base_key: str, assignee: str, timestamp_ms: int) -> str:
    return f"{base_key}{ROUTED_MARKER}{assignee}-{timestamp_ms}"


def is_routed_key(row_key: str) -> bool:
    return ROUTED_MARKER in row_key
