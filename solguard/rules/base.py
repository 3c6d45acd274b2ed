"""
Base rule interface and utilities for vulnerability detection.
"""
from __future__ import annotations

import fnmatch
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..core.models import Finding, Function, RuleResult, Severity, StateVariable

CALLER_IDENTIFIERS = ("msg.sender", "tx.origin")


@dataclass(frozen=True)
class RuleContext:
    """
    Read-only, contract-wide information shared by every rule run.
    """
    contract_name: str
    state_variables: Tuple[StateVariable, ...] = ()
    known_access_modifiers: FrozenSet[str] = frozenset()
    options: Dict[str, Any] = field(default_factory=dict)

    def state_variable(self, name: str) -> Optional[StateVariable]:
        for var in self.state_variables:
            if var.name == name:
                return var
        return None


class BaseRule(ABC):
    """
    Abstract base class for all analysis rules.

    A rule receives one read-only ``Function`` and returns its own
    ``RuleResult``. Rules never share mutable state, so the engine may run
    any number of (function x rule) pairs concurrently.
    """

    rule_id: str = "BASE_RULE"
    title: str = "Base rule"
    description: str = "Base rule class"
    severity: Severity = Severity.INFO
    category: str = "unknown"
    cwe_id: Optional[str] = None
    recommendation: str = ""
    references: Tuple[str, ...] = ()
    enabled_by_default: bool = True

    @abstractmethod
    def analyze(self, function: Function, context: RuleContext) -> RuleResult:
        """
        Analyze one function.

        Returns a ``RuleResult`` that carries the findings, or is marked
        not applicable when the rule has nothing to check in this function.
        """

    @classmethod
    def matches_selector(cls, selector: str) -> bool:
        """
        Check if this rule matches the given selector.

        Supports:
        - Exact id match: "REENTRANCY"
        - Glob patterns: "UNCHECKED_*", "*_GAS"
        - Category patterns: "category:access", "category:*"
        """
        if selector.startswith("category:"):
            category_pattern = selector[9:]
            if category_pattern == "*":
                return True
            return fnmatch.fnmatchcase(cls.category, category_pattern)

        if selector == cls.rule_id:
            return True

        return fnmatch.fnmatchcase(cls.rule_id, selector)

    @classmethod
    def get_metadata(cls) -> Dict[str, Any]:
        """Get rule metadata for introspection."""
        return {
            "rule_id": cls.rule_id,
            "title": cls.title,
            "description": cls.description,
            "category": cls.category,
            "severity": cls.severity.name,
            "cwe_id": cls.cwe_id,
            "enabled_by_default": cls.enabled_by_default,
            "references": list(cls.references),
        }

    def create_finding(
        self,
        function: Function,
        position: int,
        message: str,
        line: int = 0,
        severity: Optional[Severity] = None,
        title: Optional[str] = None,
    ) -> Finding:
        """Create a Finding object with rule defaults."""
        return Finding(
            rule_id=self.rule_id,
            function_name=function.name,
            statement_position=position,
            severity=severity or self.severity,
            message=message,
            contract_name=function.contract_name,
            line=line,
            title=title or self.title,
            recommendation=self.recommendation,
            cwe_id=self.cwe_id,
            references=tuple(self.references),
        )

    def result(self, function: Function, findings: Iterable[Finding] = ()) -> RuleResult:
        return RuleResult(rule_id=self.rule_id, function_name=function.name, findings=tuple(findings))

    def not_applicable(self, function: Function) -> RuleResult:
        return RuleResult(rule_id=self.rule_id, function_name=function.name, applicable=False)


def references_caller(expr: Optional[str], reads: Iterable[str], function: Function) -> bool:
    """True when an expression names the caller or an address-typed parameter."""
    if expr and any(caller in expr for caller in CALLER_IDENTIFIERS):
        return True
    address_params = {p.name for p in function.parameters if p.is_address}
    return any(name in address_params for name in reads)


def format_names(names: Iterable[str]) -> str:
    items: List[str] = sorted(set(names))
    return ", ".join(items) if items else "-"
