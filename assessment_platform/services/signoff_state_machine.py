"""
Sign-off state machine — pure functions, no DB dependencies.

SIGNOFF_TRANSITIONS is the complete adjacency table: every SignOffStage has
an entry, no stage lists itself, nothing jumps ahead, and ``rejected`` leads
only back to ``not_started``. Callers must ask can_transition() before
writing a stage.

STAGE_GATES describes the five validation gates the workflow drives:
the stage a gate is entered from, its in-progress stage, the stage it
completes into, and the validator-types that must all approve.
"""

from __future__ import annotations

from dataclasses import dataclass

from assessment_platform.core.exceptions import ValidationError
from assessment_platform.models.signoff import SignOffStage

S = SignOffStage

SIGNOFF_TRANSITIONS: dict[SignOffStage, tuple[SignOffStage, ...]] = {
    S.NOT_STARTED: (S.AREA_VALIDATION_IN_PROGRESS,),
    S.AREA_VALIDATION_IN_PROGRESS: (S.AREA_VALIDATION_COMPLETE, S.REJECTED),
    S.AREA_VALIDATION_COMPLETE: (S.TECHNICAL_VALIDATION_IN_PROGRESS,),
    S.TECHNICAL_VALIDATION_IN_PROGRESS: (S.TECHNICAL_VALIDATION_COMPLETE, S.REJECTED),
    S.TECHNICAL_VALIDATION_COMPLETE: (S.CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS,),
    S.CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS: (S.CROSS_FUNCTIONAL_VALIDATION_COMPLETE, S.REJECTED),
    S.CROSS_FUNCTIONAL_VALIDATION_COMPLETE: (S.EXECUTIVE_PENDING,),
    S.EXECUTIVE_PENDING: (S.EXECUTIVE_SIGNED, S.REJECTED),
    S.EXECUTIVE_SIGNED: (S.PARTNER_COUNTERSIGN_PENDING,),
    S.PARTNER_COUNTERSIGN_PENDING: (S.COMPLETED, S.REJECTED),
    S.COMPLETED: (),
    S.REJECTED: (S.NOT_STARTED,),
}

IN_PROGRESS_STAGES = frozenset(
    stage for stage, targets in SIGNOFF_TRANSITIONS.items() if S.REJECTED in targets
)

# Platform role expected to act while the process sits at each stage
_REQUIRED_ROLES: dict[SignOffStage, str | None] = {
    S.NOT_STARTED: "consultant",
    S.AREA_VALIDATION_IN_PROGRESS: "process_owner",
    S.AREA_VALIDATION_COMPLETE: "consultant",
    S.TECHNICAL_VALIDATION_IN_PROGRESS: "it_lead",
    S.TECHNICAL_VALIDATION_COMPLETE: "consultant",
    S.CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS: "solution_architect",
    S.CROSS_FUNCTIONAL_VALIDATION_COMPLETE: "consultant",
    S.EXECUTIVE_PENDING: "executive_sponsor",
    S.EXECUTIVE_SIGNED: "partner_lead",
    S.PARTNER_COUNTERSIGN_PENDING: "partner_lead",
    S.COMPLETED: None,
    S.REJECTED: None,
}

SNAPSHOT_CHECKPOINTS = frozenset({S.COMPLETED})


@dataclass(frozen=True)
class StageGate:
    """One validation gate: entered from ``entry``, completes into ``complete``."""

    name: str
    entry: SignOffStage
    in_progress: SignOffStage
    complete: SignOffStage
    required_roles: frozenset

    @property
    def label(self) -> str:
        return self.name.replace("_", "-").title()


STAGE_GATES: tuple[StageGate, ...] = (
    StageGate("area", S.NOT_STARTED, S.AREA_VALIDATION_IN_PROGRESS,
              S.AREA_VALIDATION_COMPLETE, frozenset({"area"})),
    StageGate("technical", S.AREA_VALIDATION_COMPLETE, S.TECHNICAL_VALIDATION_IN_PROGRESS,
              S.TECHNICAL_VALIDATION_COMPLETE, frozenset({"it_lead", "dm_lead"})),
    StageGate("cross_functional", S.TECHNICAL_VALIDATION_COMPLETE,
              S.CROSS_FUNCTIONAL_VALIDATION_IN_PROGRESS,
              S.CROSS_FUNCTIONAL_VALIDATION_COMPLETE, frozenset({"cross_functional"})),
    StageGate("executive", S.CROSS_FUNCTIONAL_VALIDATION_COMPLETE, S.EXECUTIVE_PENDING,
              S.EXECUTIVE_SIGNED, frozenset({"executive"})),
    StageGate("partner", S.EXECUTIVE_SIGNED, S.PARTNER_COUNTERSIGN_PENDING,
              S.COMPLETED, frozenset({"partner"})),
)

_GATE_BY_ROLE = {role: gate for gate in STAGE_GATES for role in gate.required_roles}

# Gates whose approval is a signature over the baseline snapshot
SIGNATURE_GATES = frozenset({"executive", "partner"})


def _coerce(stage) -> SignOffStage | None:
    if isinstance(stage, SignOffStage):
        return stage
    try:
        return SignOffStage(stage)
    except ValueError:
        return None


def can_transition(current, requested) -> bool:
    """Return True if ``current → requested`` is an edge of the table.

    Accepts SignOffStage members or their string values; unknown values
    are never a valid transition.
    """
    cur, req = _coerce(current), _coerce(requested)
    if cur is None or req is None:
        return False
    return req in SIGNOFF_TRANSITIONS[cur]


def available_transitions(stage) -> list[SignOffStage]:
    cur = _coerce(stage)
    if cur is None:
        return []
    return list(SIGNOFF_TRANSITIONS[cur])


def is_terminal(stage) -> bool:
    cur = _coerce(stage)
    return cur is not None and not SIGNOFF_TRANSITIONS[cur]


def required_role(stage) -> str | None:
    """Platform role expected to act at *stage*; None for terminal states."""
    cur = _coerce(stage)
    if cur is None:
        return None
    return _REQUIRED_ROLES[cur]


def gate_for_role(stage_role: str) -> StageGate:
    """Resolve a validator-type to its gate, or raise ValidationError."""
    gate = _GATE_BY_ROLE.get(stage_role)
    if gate is None:
        raise ValidationError(
            f"Unknown stage_role '{stage_role}'",
            details={"stage_role": f"must be one of {sorted(_GATE_BY_ROLE)}"},
        )
    return gate


def gate_for_stage(stage) -> StageGate | None:
    """Gate whose entry or in-progress stage is *stage*, if any."""
    cur = _coerce(stage)
    for gate in STAGE_GATES:
        if cur in (gate.entry, gate.in_progress):
            return gate
    return None
