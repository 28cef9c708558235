"""
Canonical content fingerprint — pure functions, no I/O.

A fingerprint is the SHA-256 hex digest of a canonical JSON rendering of a
structured value:

    - dict keys are sorted;
    - every list / tuple / set is an unordered collection: its elements are
      canonicalised and then sorted by their own canonical serialisation;
    - date / datetime → ISO-8601 string, Decimal / UUID → str, Enum → value.

Two values with the same logical content therefore share a fingerprint no
matter how their dicts were built or in which order the records came back
from the database. Changing any scalar changes the digest.
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonicalize(value: Any) -> Any:
    """Return a JSON-compatible structure with a single canonical form."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        # 1.0 and 1 are the same number once serialised
        return int(value) if value.is_integer() else value
    if isinstance(value, enum.Enum):
        return canonicalize(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, dict):
        return {str(k): canonicalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=_dumps)
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


def canonical_json(value: Any) -> str:
    """Compact, key-sorted JSON text of the canonical form of *value*."""
    return _dumps(canonicalize(value))


def compute_fingerprint(value: Any) -> str:
    """SHA-256 hex digest (64 chars) of ``canonical_json(value)``."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def verify_fingerprint(value: Any, expected: str | None) -> bool:
    """True when *value* still hashes to *expected* (constant-time compare)."""
    if not expected:
        return False
    return hmac.compare_digest(compute_fingerprint(value), expected)
