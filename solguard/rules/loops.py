"""
Loop bound analyzer and gas-exhaustion rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .base import BaseRule, RuleContext
from ..core.models import (
    BoundType, ExternalCall, Function, GuardCheck, GuardKind, Loop, RuleResult, Severity,
    StorageRead, StorageWrite,
)
from ..core.registry import register


@dataclass(frozen=True)
class LoopProfile:
    loop: Loop
    has_effects: bool
    has_gas_check: bool
    parameter_guarded: bool
    resume_index: Optional[str]

    @property
    def bound_kind(self) -> BoundType:
        return self.loop.bound.kind


def analyze_loops(function: Function) -> List[LoopProfile]:
    statements = list(function.walk())
    profiles = []
    for loop in (s for s in statements if isinstance(s, Loop)):
        body = list(loop.walk_body())
        profiles.append(LoopProfile(
            loop=loop,
            has_effects=any(isinstance(s, (ExternalCall, StorageWrite)) for s in body),
            has_gas_check=any(isinstance(s, GuardCheck) and s.kind == GuardKind.GAS_CHECK for s in body),
            parameter_guarded=_parameter_guarded(loop, statements),
            resume_index=_resume_index(loop, statements),
        ))
    return profiles


def _parameter_guarded(loop: Loop, statements) -> bool:
    if loop.bound.kind != BoundType.PARAMETER:
        return False
    return any(
        isinstance(s, GuardCheck) and s.position < loop.position and loop.bound.value in s.bounds
        for s in statements
    )


def _resume_index(loop: Loop, statements) -> Optional[str]:
    """The storage variable the loop starts from, read before it and written after it."""
    var = loop.init_from
    if var is None:
        return None
    read_before = any(
        isinstance(s, StorageRead) and s.var == var and s.position < loop.position for s in statements
    )
    written_after = any(
        isinstance(s, StorageWrite) and s.var == var and s.position > loop.end_position for s in statements
    )
    return var if read_before and written_after else None


@register
class UnboundedGasRule(BaseRule):
    """
    Flags loops whose iteration count is not fixed at compile time and whose
    body performs external calls or storage writes.
    """

    rule_id = "UNBOUNDED_GAS"
    title = "Unbounded loop with costly body"
    description = "Detects loops that can exhaust the block gas limit"
    severity = Severity.HIGH
    category = "gas"
    cwe_id = "CWE-400"
    recommendation = (
        "Cap the iteration count, process the collection in batches with a persisted "
        "resume index, or switch to a pull-payment pattern."
    )
    references = ("https://swcregistry.io/docs/SWC-128",)

    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        profiles = analyze_loops(function)
        if not profiles:
            return self.not_applicable(function)

        findings = []
        for profile in profiles:
            loop = profile.loop
            if profile.bound_kind == BoundType.CONSTANT or not profile.has_effects:
                continue

            if profile.bound_kind == BoundType.PARAMETER:
                if profile.parameter_guarded:
                    continue
                findings.append(self.create_finding(
                    function,
                    position=loop.position,
                    line=loop.line,
                    severity=Severity.MEDIUM,
                    message=(
                        f"Loop in {function.name} is bounded by parameter '{loop.bound.value}' "
                        f"with no guard capping it to a safe maximum."
                    ),
                ))
                continue

            severity = Severity.HIGH
            note = ""
            if profile.resume_index:
                severity = Severity.LOW
                note = f" Resumable via '{profile.resume_index}'."
            elif profile.has_gas_check:
                severity = Severity.MEDIUM
                note = " A gasleft() check limits each call but not the worst-case iteration count."
            findings.append(self.create_finding(
                function,
                position=loop.position,
                line=loop.line,
                severity=severity,
                message=f"Loop in {function.name} has bound {loop.bound} and a costly body.{note}",
            ))
        return self.result(function, findings)
