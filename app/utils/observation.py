from __future__ import annotations

from app.core.errors import ValidationError
from app.db.models.site_record import Observation

# Clients encode "Resolved" as an empty string; translate only at the edge.
_WIRE_RESOLVED = ""


def parse_observation(value: str | None) -> Observation:
    v = (value or "").strip()
    if v == _WIRE_RESOLVED or v.lower() == "resolved":
        return Observation.RESOLVED
    if v.lower() == "pending":
        return Observation.PENDING
    raise ValidationError(f"Unknown observation status: {value!r}")


def to_wire(observation: Observation) -> str:
    return _WIRE_RESOLVED if observation == Observation.RESOLVED else observation.value
