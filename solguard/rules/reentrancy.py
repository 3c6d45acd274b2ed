"""
State-mutation tracker and reentrancy rule.

Flags the checks-effects-interactions violation: a guard reads a storage
variable, an external call hands control to the caller, and only then is the
guarded variable updated.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Set, Tuple

from .base import BaseRule, RuleContext, format_names, references_caller
from ..core.models import (
    ExternalCall, Function, GuardCheck, GuardKind, RuleResult, Severity, StorageWrite,
)
from ..core.registry import register


@dataclass(frozen=True)
class MutationProfile:
    """Ordered storage writes and external calls of one function."""
    writes: Tuple[StorageWrite, ...]
    calls: Tuple[ExternalCall, ...]
    # Each call paired with the later writes to variables an earlier guard read.
    exposures: Tuple[Tuple[ExternalCall, Tuple[StorageWrite, ...]], ...]

    @property
    def calls_before_writes(self) -> bool:
        return any(writes for _call, writes in self.exposures)


def track_mutations(function: Function) -> MutationProfile:
    statements = list(function.walk())
    writes = tuple(s for s in statements if isinstance(s, StorageWrite))
    calls = tuple(s for s in statements if isinstance(s, ExternalCall))

    exposures = []
    for call in calls:
        guarded: Set[str] = set()
        for stmt in statements:
            if stmt.position >= call.position:
                break
            if isinstance(stmt, GuardCheck):
                guarded.update(stmt.reads)
        late = tuple(w for w in writes if w.position > call.position and w.var in guarded)
        exposures.append((call, late))
    return MutationProfile(writes=writes, calls=calls, exposures=tuple(exposures))


@register
class ReentrancyRule(BaseRule):
    """
    Detects external calls to caller-controlled addresses that precede the
    storage update of a guarded variable.
    """

    rule_id = "REENTRANCY"
    title = "Reentrancy: state updated after external call"
    description = "Flags guard -> external call -> storage write sequences without a mutex"
    severity = Severity.CRITICAL
    category = "reentrancy"
    cwe_id = "CWE-841"
    recommendation = (
        "Apply checks-effects-interactions: update storage before the external call, "
        "or protect the function with a reentrancy guard."
    )
    references = (
        "https://swcregistry.io/docs/SWC-107",
        "https://consensys.github.io/smart-contract-best-practices/attacks/reentrancy/",
    )

    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        profile = track_mutations(function)
        if not profile.calls:
            return self.not_applicable(function)
        if function.has_guard(GuardKind.MUTEX):
            return self.result(function)

        findings = []
        for call, late_writes in profile.exposures:
            if not late_writes:
                continue
            expr = f"{call.target_expr} {call.value_expr or ''}"
            if not references_caller(expr, call.reads, function):
                continue

            severity = self.severity
            if call.value_is_zero or (not call.transfers_value and not call.invokes_unknown_contract):
                severity = Severity.INFO

            written = format_names(w.var for w in late_writes)
            findings.append(self.create_finding(
                function,
                position=call.position,
                line=call.line,
                severity=severity,
                message=(
                    f"External call to '{call.target_expr}' in {function.name} happens before "
                    f"guarded state ({written}) is updated; a re-entrant call observes stale state."
                ),
            ))
        return self.result(function, findings)
