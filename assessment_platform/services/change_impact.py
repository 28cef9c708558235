"""
Change-impact engine — pure functions, no DB dependencies.

Rates the risk of reopening specific entities of an approved assessment,
judged against the baseline snapshot the change request references.

Rules:
    - Every unlocked entity contributes a level:
        scope_selection, ocm                     → low
        step_response classified FIT at baseline → low
        step_response not FIT / unclassified     → medium
        integration, data_migration              → medium
        gap_resolution                           → medium
        gap_resolution client-approved           → high
    - The overall level is the MAXIMUM contribution, never an average.
    - More than ``escalation_threshold`` entities at once raises the
      level one step (capped at high).
    - No entities → low.

Both rules only ever push the level up as entities are added, so the level
is monotone in the set of unlocked entities.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field

from assessment_platform.core.exceptions import DataIntegrityError, ValidationError

DEFAULT_ESCALATION_THRESHOLD = 20


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH)


def escalate(level: RiskLevel) -> RiskLevel:
    """One step up, capped at HIGH."""
    return _RISK_ORDER[min(level.rank + 1, len(_RISK_ORDER) - 1)]


# entity_type → (snapshot collection, keys an entity_id may match)
_ENTITY_SOURCES = {
    "scope_selection": ("scope_selections", ("id", "scope_item_id")),
    "step_response": ("step_responses", ("id", "process_step_id")),
    "gap_resolution": ("gap_resolutions", ("id",)),
    "integration": ("integration_points", ("id",)),
    "data_migration": ("data_migration_objects", ("id",)),
    "ocm": (None, ("id",)),
}

UNLOCKABLE_ENTITY_TYPES = tuple(_ENTITY_SOURCES)

_REWORK_DAYS_PER_ENTITY = {
    "scope_selection": 0.5,
    "step_response": 0.25,
    "gap_resolution": 1.0,
    "integration": 2.0,
}


@dataclass
class ImpactSummary:
    risk_level: RiskLevel
    breakdown: dict
    total_entities_affected: int
    highest_contribution: RiskLevel
    escalated: bool
    escalation_threshold: int
    affected_functional_areas: list = field(default_factory=list)
    estimated_rework_days: int = 0

    def to_dict(self) -> dict:
        return {
            "risk_level": self.risk_level.value,
            "breakdown": dict(self.breakdown),
            "total_entities_affected": self.total_entities_affected,
            "highest_contribution": self.highest_contribution.value,
            "escalated": self.escalated,
            "escalation_threshold": self.escalation_threshold,
            "affected_functional_areas": list(self.affected_functional_areas),
            "estimated_rework_days": self.estimated_rework_days,
        }


def _index_payload(baseline_payload: dict) -> dict:
    """{entity_type: {key value: record}} over the snapshot collections."""
    index = {}
    for entity_type, (collection, keys) in _ENTITY_SOURCES.items():
        if collection is None:
            continue
        lookup = {}
        for record in baseline_payload.get(collection) or []:
            for key in keys:
                if record.get(key) is not None:
                    lookup[str(record[key])] = record
        index[entity_type] = lookup
    return index


def _contribution(entity_type: str, baseline_record: dict | None) -> RiskLevel:
    if entity_type in ("scope_selection", "ocm"):
        return RiskLevel.LOW
    if entity_type == "step_response":
        status = ((baseline_record or {}).get("fit_status") or "").upper()
        return RiskLevel.LOW if status == "FIT" else RiskLevel.MEDIUM
    if entity_type == "gap_resolution":
        if baseline_record and baseline_record.get("client_approved"):
            return RiskLevel.HIGH
        return RiskLevel.MEDIUM
    return RiskLevel.MEDIUM


def compute_impact(
    unlocked_entities: list[dict],
    baseline_payload: dict,
    *,
    escalation_threshold: int = DEFAULT_ESCALATION_THRESHOLD,
) -> ImpactSummary:
    """Risk summary for unlocking *unlocked_entities* against *baseline_payload*.

    Entities are dicts with ``entity_type`` and ``entity_id`` (and optionally
    ``functional_area``). Deterministic and side-effect free.
    """
    index = _index_payload(baseline_payload or {})
    breakdown = {entity_type: 0 for entity_type in UNLOCKABLE_ENTITY_TYPES}
    highest = RiskLevel.LOW
    areas = set()

    for entity in unlocked_entities:
        entity_type = entity["entity_type"]
        record = index.get(entity_type, {}).get(str(entity["entity_id"]))
        breakdown[entity_type] = breakdown.get(entity_type, 0) + 1

        level = _contribution(entity_type, record)
        if level.rank > highest.rank:
            highest = level

        area = entity.get("functional_area") or (record or {}).get("functional_area")
        if area:
            areas.add(area)

    total = len(unlocked_entities)
    escalated = total > escalation_threshold
    risk = escalate(highest) if escalated else highest

    rework = sum(breakdown[t] * days for t, days in _REWORK_DAYS_PER_ENTITY.items())

    return ImpactSummary(
        risk_level=risk,
        breakdown=breakdown,
        total_entities_affected=total,
        highest_contribution=highest,
        escalated=escalated,
        escalation_threshold=escalation_threshold,
        affected_functional_areas=sorted(areas),
        estimated_rework_days=math.ceil(rework),
    )


def resolve_unlocked_entities(
    unlocked_entities: list[dict],
    baseline_payload: dict,
    live_ocm_ids=(),
) -> list[dict]:
    """Validate and normalise the requested entities.

    Every entity must name a known type, a non-blank reason and an id that
    exists in the same assessment: in the baseline snapshot for captured
    collections, in the live OCM register for ``ocm``.

    Raises:
        ValidationError: malformed entry or unknown entity type.
        DataIntegrityError: one or more references do not resolve.
    """
    index = _index_payload(baseline_payload or {})
    ocm_ids = {str(i) for i in live_ocm_ids}
    resolved, unresolved = [], []

    for position, entity in enumerate(unlocked_entities):
        if not isinstance(entity, dict):
            raise ValidationError(
                "Each unlocked entity must be an object",
                details={f"unlocked_entities[{position}]": "must be an object"},
            )
        entity_type = (entity.get("entity_type") or "").strip()
        entity_id = entity.get("entity_id")
        if entity_type not in _ENTITY_SOURCES:
            raise ValidationError(
                f"Unknown entity_type '{entity_type}'",
                details={
                    f"unlocked_entities[{position}].entity_type":
                        f"must be one of {list(UNLOCKABLE_ENTITY_TYPES)}",
                },
            )
        if entity_id in (None, ""):
            raise ValidationError(
                "entity_id is required",
                details={f"unlocked_entities[{position}].entity_id": "required"},
            )
        reason = (entity.get("reason") or "").strip()
        if not reason:
            raise ValidationError(
                "Every unlocked entity needs a reason",
                details={f"unlocked_entities[{position}].reason": "required"},
            )

        entity_id = str(entity_id)
        if entity_type == "ocm":
            found = entity_id in ocm_ids
        else:
            found = entity_id in index[entity_type]
        if not found:
            unresolved.append({"entity_type": entity_type, "entity_id": entity_id})
            continue

        item = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "reason": reason,
        }
        if entity.get("functional_area"):
            item["functional_area"] = entity["functional_area"]
        resolved.append(item)

    if unresolved:
        raise DataIntegrityError(
            f"{len(unresolved)} unlocked entit{'y does' if len(unresolved) == 1 else 'ies do'} "
            "not resolve within the assessment",
            details={"unresolved": unresolved},
        )
    return resolved
