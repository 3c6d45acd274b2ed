"""
Access-control resolver and missing-access-control rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Tuple

from .base import BaseRule, RuleContext, format_names
from ..core.models import (
    ExternalCall, Function, Guard, GuardCheck, GuardKind, RuleResult, Severity, StorageWrite,
)
from ..core.registry import register

KNOWN_ACCESS_MODIFIERS = frozenset({
    "onlyOwner", "onlyAdmin", "onlyRole", "onlyGovernance", "onlyMinter", "onlyOperator",
    "requiresAuth", "auth", "restricted", "authorized", "permissioned", "ownerOnly",
})


@dataclass(frozen=True)
class GuardResolution:
    guards: Tuple[Guard, ...]
    recognized: Tuple[Guard, ...]
    unresolved: Tuple[Guard, ...]

    @property
    def is_empty(self) -> bool:
        return not self.guards


class AccessResolver:
    """Builds the permission-guard set of a function."""

    def __init__(self, extra_modifiers: Iterable[str] = ()):
        self.known_modifiers: FrozenSet[str] = KNOWN_ACCESS_MODIFIERS | frozenset(extra_modifiers)

    def is_known_modifier(self, name: Optional[str]) -> bool:
        if not name:
            return False
        return name in self.known_modifiers or (name.startswith("only") and len(name) > 4 and name[4].isupper())

    def resolve(self, function: Function) -> GuardResolution:
        guards = [g for g in function.guards if g.is_access_guard]
        for stmt in function.walk():
            if isinstance(stmt, GuardCheck) and stmt.kind in (GuardKind.OWNER_CHECK, GuardKind.ROLE_CHECK):
                guards.append(Guard(kind=stmt.kind, role_expr=stmt.role_expr))
        guards.sort(key=lambda g: (g.kind.value, g.name or "", g.role_expr or ""))

        recognized, unresolved = [], []
        for guard in guards:
            if guard.kind == GuardKind.CUSTOM_MODIFIER and not self.is_known_modifier(guard.name):
                unresolved.append(guard)
            else:
                recognized.append(guard)
        return GuardResolution(tuple(guards), tuple(recognized), tuple(unresolved))


def first_sensitive_statement(function: Function):
    for stmt in function.walk():
        if isinstance(stmt, StorageWrite):
            return stmt
        if isinstance(stmt, ExternalCall) and stmt.transfers_value:
            return stmt
    return None


@register
class MissingAccessControlRule(BaseRule):
    """
    Flags externally reachable functions that mutate storage or move funds
    without any access guard.
    """

    rule_id = "MISSING_ACCESS_CONTROL"
    title = "Missing access control"
    description = "Detects state-mutating or fund-transferring entry points without a guard"
    severity = Severity.CRITICAL
    category = "access"
    cwe_id = "CWE-284"
    recommendation = "Add an owner or role check (e.g. onlyOwner, hasRole) to the function."
    references = ("https://swcregistry.io/docs/SWC-105", "https://swcregistry.io/docs/SWC-106")

    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        if not function.is_externally_reachable or function.is_constructor:
            return self.not_applicable(function)

        sensitive = first_sensitive_statement(function)
        if sensitive is None and not (function.is_read_only and function.returns_sensitive):
            return self.not_applicable(function)
        position = sensitive.position if sensitive is not None else 0
        line = sensitive.line if sensitive is not None else function.line

        resolution = AccessResolver(context.known_access_modifiers).resolve(function)
        if resolution.is_empty:
            what = "returns sensitive data" if sensitive is None else "mutates state or transfers value"
            return self.result(function, [self.create_finding(
                function,
                position=position,
                line=line,
                message=f"{function.visibility.value} function {function.name} {what} without any access guard.",
            )])

        names = format_names(g.name for g in resolution.unresolved if g.name)
        if not resolution.recognized:
            return self.result(function, [self.create_finding(
                function,
                position=position,
                line=line,
                severity=Severity.INFO,
                title="Unverifiable access guard",
                message=(
                    f"{function.name} is guarded only by modifier(s) {names}, which could not be "
                    f"resolved to a known access-control pattern."
                ),
            )])
        if resolution.unresolved:
            guards = format_names(g.name or f"in-body {g.kind.value} check" for g in resolution.recognized)
            return self.result(function, [self.create_finding(
                function,
                position=position,
                line=line,
                severity=Severity.INFO,
                title="Unverifiable access guard",
                message=(
                    f"{function.name} is guarded by {guards}, but modifier(s) {names} could not be "
                    f"resolved to a known access-control pattern."
                ),
            )])
        return self.result(function)
