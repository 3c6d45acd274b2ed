"""
Finding aggregation: consistency checks, deduplication and ordering.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from .errors import AggregationError
from .models import ContractGraph, Finding, RuleOutcome, RuleResult, Severity

logger = logging.getLogger(__name__)


class FindingAggregator:
    """Merges per-(function x rule) results into one ordered finding list."""

    def __init__(self, threshold: Severity = Severity.INFO):
        self.threshold = threshold

    def aggregate(
        self,
        graph: ContractGraph,
        rule_ids: Sequence[str],
        results: Iterable[RuleResult],
    ) -> Tuple[Tuple[Finding, ...], Tuple[RuleOutcome, ...]]:
        results = list(results)
        self._check_consistency(graph, rule_ids, results)

        merged: Dict[Tuple[str, str, int], Finding] = {}
        for result in results:
            for finding in result.findings:
                existing = merged.get(finding.key)
                if existing is None or finding.sort_key < existing.sort_key:
                    merged[finding.key] = finding

        duplicates = sum(len(r.findings) for r in results) - len(merged)
        if duplicates:
            logger.debug(f"Merged {duplicates} duplicate findings for {graph.name}")

        kept = [f for f in merged.values() if f.severity >= self.threshold]
        ordered = tuple(sorted(kept, key=lambda f: f.sort_key))
        outcomes = tuple(sorted((r.outcome for r in results), key=lambda o: (o.function_name, o.rule_id)))
        return ordered, outcomes

    def _check_consistency(self, graph: ContractGraph, rule_ids: Sequence[str],
                           results: List[RuleResult]) -> None:
        functions = set(graph.function_names())
        expected = {(f, r) for f in functions for r in rule_ids}
        seen: Set[Tuple[str, str]] = set()

        for result in results:
            pair = (result.function_name, result.rule_id)
            if result.function_name not in functions:
                raise AggregationError(
                    f"Rule {result.rule_id} reported on unknown function '{result.function_name}' "
                    f"in contract {graph.name}"
                )
            if pair not in expected:
                raise AggregationError(f"Unexpected result from rule {result.rule_id}")
            if pair in seen:
                raise AggregationError(
                    f"Rule {result.rule_id} reported twice for function '{result.function_name}'"
                )
            seen.add(pair)
            for finding in result.findings:
                if finding.function_name != result.function_name or finding.rule_id != result.rule_id:
                    raise AggregationError(
                        f"Finding {finding.rule_id}@{finding.function_name} does not match its "
                        f"result {result.rule_id}@{result.function_name}"
                    )

        missing = expected - seen
        if missing:
            function_name, rule_id = sorted(missing)[0]
            raise AggregationError(
                f"Rule {rule_id} produced no result for function '{function_name}' "
                f"({len(missing)} missing results)"
            )
