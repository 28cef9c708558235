"""
Snapshot delta engine — pure functions, no DB dependencies.

Compares two snapshot payloads collection by collection, matching records
by their natural key (scope item, process step) or by record id for the
registers. Only the listed fields are compared; anything else in a record
is display data.
"""

from __future__ import annotations

# (report key, payload collection, match key, compared fields, summary prefix)
_COLLECTIONS = (
    ("scope_changes", "scope_selections", "scope_item_id",
     ("selected", "relevance"), "scope"),
    ("classification_changes", "step_responses", "process_step_id",
     ("fit_status", "confidence"), "classifications"),
    ("gap_resolution_changes", "gap_resolutions", "id",
     ("resolution_type", "priority", "client_approved"), "gap_resolutions"),
    ("integration_changes", "integration_points", "id",
     ("status",), "integrations"),
    ("data_migration_changes", "data_migration_objects", "id",
     ("status",), "data_migration"),
)

CHANGE_TYPES = ("added", "removed", "modified")


def _pick(record: dict, fields) -> dict:
    return {f: record.get(f) for f in fields}


def _diff_collection(base: list, compare: list, key: str, fields) -> list[dict]:
    base_map = {r[key]: r for r in base or []}
    compare_map = {r[key]: r for r in compare or []}
    changes = []

    for rid in sorted(set(base_map) | set(compare_map), key=str):
        old, new = base_map.get(rid), compare_map.get(rid)
        if old is None:
            changes.append({key: rid, "change_type": "added", "previous": None, "new": _pick(new, fields)})
        elif new is None:
            changes.append({key: rid, "change_type": "removed", "previous": _pick(old, fields), "new": None})
        elif _pick(old, fields) != _pick(new, fields):
            changes.append({
                key: rid,
                "change_type": "modified",
                "previous": _pick(old, fields),
                "new": _pick(new, fields),
            })
    return changes


def compute_delta_report(base_payload: dict, compare_payload: dict) -> dict:
    """Per-collection added / removed / modified records between two payloads."""
    return {
        report_key: _diff_collection(
            base_payload.get(collection, []),
            compare_payload.get(collection, []),
            key,
            fields,
        )
        for report_key, collection, key, fields, _prefix in _COLLECTIONS
    }


def compute_delta_summary(report: dict) -> dict:
    """Counters per collection and change type, plus ``total_changes``."""
    summary = {"total_changes": 0}
    for report_key, _collection, _key, _fields, prefix in _COLLECTIONS:
        changes = report.get(report_key, [])
        summary["total_changes"] += len(changes)
        for change_type in CHANGE_TYPES:
            summary[f"{prefix}_{change_type}"] = sum(
                1 for c in changes if c["change_type"] == change_type
            )
    summary["classifications_changed"] = len(report.get("classification_changes", []))
    return summary
