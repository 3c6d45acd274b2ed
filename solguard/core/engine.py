"""
Rule engine: runs every enabled rule over every function of a contract.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, Union

from .aggregator import FindingAggregator
from .errors import ResourceLimitError
from .graph_builder import GraphBuilder
from .models import ContractGraph, Report, RuleResult
from .registry import discover_rules
from .. import __version__
from ..config.settings import Settings
from ..parsing.parsed_contract import ParsedContract
from ..rules import load_rules
from ..rules.base import RuleContext

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """
    Analyzes one contract per call.

    The pass is atomic: either a full ordered ``Report`` is returned or a
    single ``MalformedInputError``, ``AggregationError`` or
    ``ResourceLimitError`` is raised.
    """

    def __init__(self, settings: Optional[Settings] = None, rules: Optional[List[Type]] = None):
        self.settings = settings or Settings()
        self.warnings: List[str] = []
        if rules is None:
            discover_rules()
            rules, self.warnings = load_rules(
                self.settings.analysis.enabled_rules, self.settings.analysis.disabled_rules,
            )
            for warning in self.warnings:
                logger.warning(warning)
        self.rules = [rule_cls() for rule_cls in rules]
        self.builder = GraphBuilder(safe_helpers=self.settings.arithmetic.safe_helpers)
        self.aggregator = FindingAggregator(threshold=self.settings.threshold)

    @property
    def rule_ids(self) -> List[str]:
        return [rule.rule_id for rule in self.rules]

    def analyze(self, parsed: Union[ParsedContract, Dict[str, Any]],
                analyzed_at: Optional[datetime] = None) -> Report:
        if isinstance(parsed, dict):
            parsed = ParsedContract.from_dict(parsed)

        start = time.perf_counter()
        self._check_function_limit(parsed)
        graph = self.builder.build(parsed)
        self._check_statement_limit(graph)

        context = RuleContext(
            contract_name=graph.name,
            state_variables=graph.state_variables,
            known_access_modifiers=frozenset(self.settings.access_control.known_modifiers),
        )
        results = self._run_rules(graph, context)
        findings, outcomes = self.aggregator.aggregate(graph, self.rule_ids, results)

        logger.info(
            f"Analyzed {graph.name}: {len(graph.functions)} functions, {len(self.rules)} rules, "
            f"{len(findings)} findings in {time.perf_counter() - start:.3f}s"
        )
        return Report(
            contract_name=graph.name,
            ordered_findings=findings,
            analyzed_at=analyzed_at or datetime.now(timezone.utc),
            outcomes=outcomes,
            rules_run=tuple(sorted(self.rule_ids)),
            tool_version=__version__,
            severity_threshold=self.settings.threshold,
        )

    def _check_function_limit(self, parsed: ParsedContract) -> None:
        limit = self.settings.analysis.max_functions_per_contract
        if len(parsed.functions) > limit:
            raise ResourceLimitError("max_functions_per_contract", limit, len(parsed.functions))

    def _check_statement_limit(self, graph: ContractGraph) -> None:
        limit = self.settings.analysis.max_statements_per_function
        for function in graph.functions:
            count = function.statement_count()
            if count > limit:
                raise ResourceLimitError(f"max_statements_per_function ({function.name})", limit, count)

    def _run_rules(self, graph: ContractGraph, context: RuleContext) -> List[RuleResult]:
        pairs = [(rule, function) for function in graph.functions for rule in self.rules]
        workers = min(self.settings.analysis.max_workers, len(pairs))
        if workers <= 1:
            return [rule.analyze(function, context) for rule, function in pairs]

        results: List[RuleResult] = []
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(rule.analyze, function, context): (rule.rule_id, function.name)
                for rule, function in pairs
            }
            for future in as_completed(futures):
                rule_id, function_name = futures[future]
                logger.debug(f"Rule {rule_id} finished on {graph.name}.{function_name}")
                results.append(future.result())
        return results


def analyze_contract(parsed: Union[ParsedContract, Dict[str, Any]],
                     settings: Optional[Settings] = None,
                     analyzed_at: Optional[datetime] = None) -> Report:
    """Analyze one parsed contract and return its ordered report."""
    return AnalysisEngine(settings).analyze(parsed, analyzed_at=analyzed_at)
