"""
Unsafe randomness rule: block-derived values used as entropy.
"""
from __future__ import annotations

from typing import List, Optional, Set, Tuple

from .base import BaseRule, RuleContext
from ..core.models import (
    ArithmeticOp, BlockValueRead, ExternalCall, Function, GuardCheck, RuleResult, Severity,
    Statement, StorageWrite,
)
from ..core.registry import register


def trace_block_value(read: BlockValueRead, statements: List[Statement],
                      context: RuleContext) -> Tuple[Optional[Severity], Optional[str]]:
    """Follow a block value forward and return the worst sink it reaches."""
    if read.target is None:
        return None, None
    if context.state_variable(read.target) is not None:
        return Severity.HIGH, f"stored in '{read.target}'"

    tracked: Set[str] = {read.target}
    decided_at: Optional[int] = None
    for stmt in statements:
        if stmt.position <= read.position:
            continue
        if isinstance(stmt, ArithmeticOp) and stmt.result and tracked & set(stmt.operands):
            if context.state_variable(stmt.result) is not None:
                return Severity.HIGH, f"stored in '{stmt.result}'"
            tracked.add(stmt.result)
        elif isinstance(stmt, StorageWrite) and tracked & set(stmt.sources):
            return Severity.HIGH, f"stored in '{stmt.var}'"
        elif isinstance(stmt, ExternalCall):
            if tracked & set(stmt.reads):
                return Severity.HIGH, f"used in call to '{stmt.target_expr}'"
            if decided_at is not None and stmt.transfers_value:
                return Severity.HIGH, "decides a value transfer"
        elif isinstance(stmt, GuardCheck) and tracked & set(stmt.reads) and decided_at is None:
            decided_at = stmt.position
    if decided_at is not None:
        return Severity.MEDIUM, "decides a branch"
    return None, None


@register
class UnsafeRandomnessRule(BaseRule):
    """
    Flags block attributes used as a source of randomness, which miners and
    front-runners can predict or influence.
    """

    rule_id = "UNSAFE_RANDOMNESS"
    title = "Block-derived randomness"
    description = "Detects block values flowing into storage, transfers or decisions"
    severity = Severity.HIGH
    category = "randomness"
    cwe_id = "CWE-338"
    recommendation = "Use a verifiable randomness source (e.g. a VRF oracle) or a commit-reveal scheme."
    references = ("https://swcregistry.io/docs/SWC-120",)

    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        statements = list(function.walk())
        reads = [s for s in statements if isinstance(s, BlockValueRead)]
        if not reads:
            return self.not_applicable(function)

        findings = []
        for read in reads:
            severity, sink = trace_block_value(read, statements, context)
            if severity is None:
                continue
            findings.append(self.create_finding(
                function,
                position=read.position,
                line=read.line,
                severity=severity,
                message=f"'{read.source}' in {function.name} is predictable and {sink}.",
            ))
        return self.result(function, findings)
