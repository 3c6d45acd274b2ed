"""
Arithmetic effect analyzer and unchecked-arithmetic rule.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from .base import BaseRule, RuleContext
from ..core.models import (
    ArithmeticOp, Function, GuardCheck, RuleResult, Severity, Statement, StorageWrite,
)
from ..core.registry import register

# Division and modulo cannot overflow an unsigned operand
OVERFLOW_OPERATORS = frozenset({"+", "-", "*", "**", "<<", "+=", "-=", "*=", "**=", "<<=", "++", "--"})

_INTEGER_TYPE = re.compile(r"^(u?)int(\d*)$")


def operand_width(type_name: str) -> Tuple[Optional[int], bool]:
    """Return (bit width, signed) for an integer type, or (None, False)."""
    match = _INTEGER_TYPE.match((type_name or "").strip())
    if not match:
        return None, False
    width = int(match.group(2)) if match.group(2) else 256
    return width, match.group(1) != "u"


@dataclass(frozen=True)
class ArithmeticEffect:
    op: ArithmeticOp
    bit_width: Optional[int]
    signed: bool
    can_overflow: bool
    guarded: bool
    influences_storage: bool

    @property
    def wrapping(self) -> bool:
        return not self.op.checked


def analyze_arithmetic(function: Function, context: RuleContext) -> List[ArithmeticEffect]:
    statements = list(function.walk())
    by_position: Dict[int, Statement] = {s.position: s for s in statements}
    effects = []
    for stmt in statements:
        if not isinstance(stmt, ArithmeticOp):
            continue
        width, signed = operand_width(stmt.operand_type)
        effects.append(ArithmeticEffect(
            op=stmt,
            bit_width=width,
            signed=signed,
            can_overflow=stmt.operator in OVERFLOW_OPERATORS,
            guarded=_is_guarded(stmt, by_position.get(stmt.position - 1)),
            influences_storage=_influences_storage(stmt, statements, context),
        ))
    return effects


def _is_guarded(op: ArithmeticOp, previous: Optional[Statement]) -> bool:
    if not isinstance(previous, GuardCheck):
        return False
    return bool(set(previous.bounds) & set(op.operands))


def _influences_storage(op: ArithmeticOp, statements: List[Statement], context: RuleContext) -> bool:
    if op.result is not None and context.state_variable(op.result) is not None:
        return True
    tracked: Set[str] = {op.result} if op.result else set(op.operands)
    for stmt in statements:
        if stmt.position <= op.position:
            continue
        if isinstance(stmt, ArithmeticOp) and stmt.result and tracked & set(stmt.operands):
            if context.state_variable(stmt.result) is not None:
                return True
            tracked.add(stmt.result)
        elif isinstance(stmt, StorageWrite):
            if stmt.var in tracked or tracked & set(stmt.sources):
                return True
    return False


@register
class UncheckedArithmeticRule(BaseRule):
    """
    Flags wrapping arithmetic whose result reaches storage without a bounding
    guard immediately before the operation.
    """

    rule_id = "UNCHECKED_ARITH"
    title = "Unchecked arithmetic reaches storage"
    description = "Detects wrapping overflow/underflow on values that are persisted"
    severity = Severity.HIGH
    category = "arithmetic"
    cwe_id = "CWE-190"
    recommendation = (
        "Use checked arithmetic (Solidity >= 0.8 outside unchecked blocks, or SafeMath), "
        "or bound the operands with a require immediately before the operation."
    )
    references = ("https://swcregistry.io/docs/SWC-101",)

    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        effects = [e for e in analyze_arithmetic(function, context) if e.can_overflow]
        if not effects:
            return self.not_applicable(function)

        findings = []
        for effect in effects:
            if not effect.wrapping or effect.guarded or not effect.influences_storage:
                continue
            op = effect.op
            if effect.bit_width is None:
                findings.append(self.create_finding(
                    function,
                    position=op.position,
                    line=op.line,
                    severity=Severity.INFO,
                    title="Unverifiable arithmetic operand type",
                    message=(
                        f"Wrapping '{op.operator}' on non-integer type '{op.operand_type}' in "
                        f"{function.name}; overflow behaviour could not be determined."
                    ),
                ))
                continue
            kind = "underflow" if op.operator.startswith("-") else "overflow"
            findings.append(self.create_finding(
                function,
                position=op.position,
                line=op.line,
                message=(
                    f"Wrapping {effect.bit_width}-bit '{op.operator}' in {function.name} can {kind} "
                    f"and the result is persisted to storage without a bounding check."
                ),
            ))
        return self.result(function, findings)
